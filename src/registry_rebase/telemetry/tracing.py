"""OpenTelemetry tracing utilities for registry rebase.

Only the OpenTelemetry API is used: without an SDK installed and configured
by the host application, spans are no-ops.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

_TRACER_NAME = "registry_rebase"


def get_tracer() -> Tracer:
    """Get the tracer instance for registry rebase spans."""
    return trace.get_tracer(_TRACER_NAME)


@contextmanager
def create_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a span as a context manager.

    Exceptions leaving the block mark the span as failed and are re-raised.

    Args:
        name: The name for the span.
        attributes: Optional dictionary of attributes to set on the span.

    Yields:
        The created span for additional attribute setting.

    Examples:
        >>> with create_span("rebase.publish", attributes={"image.target": "acme/app:2"}):
        ...     pass
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", str(e))
            raise


__all__ = ["create_span", "get_tracer"]
