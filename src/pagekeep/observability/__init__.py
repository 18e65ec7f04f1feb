"""Observability: structured logging and metrics hooks for pagekeep."""

from __future__ import annotations

from .logger import StructuredFormatter, configure_logging, get_logger
from .metrics import MetricsHook, NoopMetricsHook, resolve_metrics

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "resolve_metrics",
]
