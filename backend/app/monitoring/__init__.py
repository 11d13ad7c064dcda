"""Relay metric registry and metric definitions."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
