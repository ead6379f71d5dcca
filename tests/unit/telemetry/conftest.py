"""Fixtures for telemetry tests."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from registry_rebase.telemetry import tracing


@pytest.fixture
def tracer_provider_with_exporter() -> tuple[TracerProvider, InMemorySpanExporter]:
    """Create a TracerProvider with InMemorySpanExporter for testing."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider(sampler=ALWAYS_ON)
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider, exporter


@pytest.fixture
def span_exporter(
    monkeypatch: pytest.MonkeyPatch,
    tracer_provider_with_exporter: tuple[TracerProvider, InMemorySpanExporter],
) -> InMemorySpanExporter:
    """Send spans created through create_span to an in-memory exporter.

    The tracer is patched instead of the global provider, which can only
    be set once per process.
    """
    provider, exporter = tracer_provider_with_exporter
    monkeypatch.setattr(tracing, "get_tracer", lambda: provider.get_tracer("test"))
    return exporter
