"""Lightweight metrics registry for Prometheus compatible exports."""

from __future__ import annotations

from threading import Lock
from typing import Iterator, Sequence


def _format_value(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _escape(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


class Metric:
    """A named family of samples, one per combination of label values.

    Counters only move up; gauges may also be set or decreased.
    """

    def __init__(self, kind: str, name: str, description: str, label_names: Sequence[str] = ()) -> None:
        if kind not in {"counter", "gauge"}:
            raise ValueError(f"Unsupported metric type '{kind}'")
        self.kind = kind
        self.name = name
        self.description = description
        self.label_names = tuple(label_names)
        self._samples: dict[tuple[str, ...], float] = {}
        self._lock = Lock()

    def labels(self, *values: object) -> "BoundMetric":
        """Bind label values, e.g. ``metric.labels("relay").inc()``."""

        if len(values) != len(self.label_names):
            raise ValueError(
                f"Metric '{self.name}' takes labels ({', '.join(self.label_names) or 'none'}), "
                f"got {len(values)} values"
            )
        return BoundMetric(self, tuple(str(value) for value in values))

    def value(self, *values: object) -> float:
        with self._lock:
            return self._samples.get(tuple(str(value) for value in values), 0.0)

    # Unlabelled shortcuts.
    def inc(self, amount: float = 1.0) -> None:
        self.labels().inc(amount)

    def dec(self, amount: float = 1.0) -> None:
        self.labels().dec(amount)

    def set(self, value: float) -> None:
        self.labels().set(value)

    def _update(self, key: tuple[str, ...], amount: float, *, absolute: bool = False) -> None:
        with self._lock:
            self._samples[key] = amount if absolute else self._samples.get(key, 0.0) + amount

    def samples(self) -> list[tuple[tuple[str, ...], float]]:
        with self._lock:
            return sorted(self._samples.items())

    def exposition(self) -> Iterator[str]:
        yield f"# HELP {self.name} {self.description}"
        yield f"# TYPE {self.name} {self.kind}"
        samples = self.samples()
        if not samples:
            yield f"{self.name} 0"
            return
        for key, value in samples:
            labels = ",".join(
                f'{name}="{_escape(label)}"' for name, label in zip(self.label_names, key)
            )
            suffix = "{" + labels + "}" if labels else ""
            yield f"{self.name}{suffix} {_format_value(value)}"


class BoundMetric:
    __slots__ = ("_metric", "_key")

    def __init__(self, metric: Metric, key: tuple[str, ...]) -> None:
        self._metric = metric
        self._key = key

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("Increment amount must be non-negative")
        self._metric._update(self._key, amount)

    def dec(self, amount: float = 1.0) -> None:
        self._require_gauge("dec")
        self._metric._update(self._key, -amount)

    def set(self, value: float) -> None:
        self._require_gauge("set")
        self._metric._update(self._key, float(value), absolute=True)

    def _require_gauge(self, operation: str) -> None:
        if self._metric.kind != "gauge":
            raise AttributeError(f"Only gauges support {operation}()")


class MetricsRegistry:
    """In-memory collection of metrics rendered in the Prometheus text format."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def _add(self, metric: Metric) -> Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric '{metric.name}' already registered")
            self._metrics[metric.name] = metric
        return metric

    def counter(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> Metric:
        return self._add(Metric("counter", name, description, label_names))

    def gauge(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> Metric:
        return self._add(Metric("gauge", name, description, label_names))

    def render(self) -> str:
        with self._lock:
            metrics = [self._metrics[name] for name in sorted(self._metrics)]
        lines = [line for metric in metrics for line in metric.exposition()]
        return "\n".join(lines) + "\n"


# Shared registry instance used across the backend.
registry = MetricsRegistry()
