from __future__ import annotations

import pytest

from app.monitoring.registry import MetricsRegistry


def test_render_uses_prometheus_text_format() -> None:
    registry = MetricsRegistry()
    events = registry.counter("events_total", "Events seen.", label_names=("kind",))
    online = registry.gauge("online", "Online identities.")

    events.labels("login").inc()
    events.labels("login").inc(2)
    events.labels('say "hi"').inc()
    online.set(3)
    online.dec()

    assert registry.render().splitlines() == [
        "# HELP events_total Events seen.",
        "# TYPE events_total counter",
        'events_total{kind="login"} 3',
        'events_total{kind="say \\"hi\\""} 1',
        "# HELP online Online identities.",
        "# TYPE online gauge",
        "online 2",
    ]


def test_empty_metric_exposes_zero_sample() -> None:
    registry = MetricsRegistry()
    registry.counter("idle_total", "Nothing yet.", label_names=("kind",))

    assert "idle_total 0" in registry.render()


def test_counter_guards() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("guarded_total", "Guarded.", label_names=("kind",))

    with pytest.raises(ValueError):
        counter.labels()
    with pytest.raises(ValueError):
        counter.labels("x").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("x").set(5)
    with pytest.raises(ValueError):
        registry.gauge("guarded_total", "Duplicate.")
