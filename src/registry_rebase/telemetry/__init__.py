"""Logging and tracing for registry rebase."""

from __future__ import annotations

from registry_rebase.telemetry.logging import add_trace_context, configure_logging
from registry_rebase.telemetry.tracing import create_span, get_tracer

__all__ = [
    "add_trace_context",
    "configure_logging",
    "create_span",
    "get_tracer",
]
