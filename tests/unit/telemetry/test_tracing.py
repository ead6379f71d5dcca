"""Unit tests for span creation and pipeline spans."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from registry_rebase.oci.client import RegistryClient
from registry_rebase.rebase.pipeline import PipelineStage, RebasePipeline, RebaseRequest
from registry_rebase.schemas.config import RebaseConfig
from registry_rebase.telemetry.tracing import create_span, get_tracer
from testing.fixtures.registry import WindowsScenario


class TestCreateSpan:
    """Tests for create_span."""

    def test_get_tracer_without_sdk_configuration(self) -> None:
        """Test a tracer is always available (no-op without a configured provider)."""
        with get_tracer().start_as_current_span("noop") as span:
            span.set_attribute("key", "value")

    def test_span_with_attributes(self, span_exporter: InMemorySpanExporter) -> None:
        """Test attributes are set on the span."""
        with create_span("rebase.publish", attributes={"image.target": "acme/app:2"}):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "rebase.publish"
        assert span.attributes is not None
        assert span.attributes["image.target"] == "acme/app:2"

    def test_exception_marks_span_failed(self, span_exporter: InMemorySpanExporter) -> None:
        """Test an exception sets error status and is re-raised."""
        with pytest.raises(ValueError, match="boom"):
            with create_span("rebase.transform"):
                raise ValueError("boom")

        (span,) = span_exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes is not None
        assert span.attributes["exception.type"] == "ValueError"
        assert span.attributes["exception.message"] == "boom"


class TestPipelineSpans:
    """Tests for the spans emitted by a pipeline run."""

    def test_stage_spans_nested_in_run_span(
        self,
        span_exporter: InMemorySpanExporter,
        rebase_config: RebaseConfig,
        registry_client: RegistryClient,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test each stage gets a child span of rebase.run."""
        request = RebaseRequest.from_strings(
            windows_scenario.source_image,
            target=windows_scenario.target_image,
            target_base=windows_scenario.target_base_image,
        )

        RebasePipeline(rebase_config, registry_client).run(request)

        spans = {span.name: span for span in span_exporter.get_finished_spans()}
        run = spans["rebase.run"]
        assert run.attributes is not None
        assert run.attributes["rebase.success"] is True
        for stage in PipelineStage:
            child = spans[stage.span_name]
            assert child.parent is not None
            assert child.parent.span_id == run.context.span_id

    def test_failed_stage_recorded(
        self,
        span_exporter: InMemorySpanExporter,
        rebase_config: RebaseConfig,
        registry_client: RegistryClient,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test the failing stage span has error status and the run span names it."""
        request = RebaseRequest.from_strings(
            windows_scenario.source_image,
            target=windows_scenario.target_image,
            target_base=windows_scenario.target_base_image,
            source_base=windows_scenario.target_base_image,
        )

        RebasePipeline(rebase_config, registry_client).run(request)

        spans = {span.name: span for span in span_exporter.get_finished_spans()}
        assert spans["rebase.check_base"].status.status_code == StatusCode.ERROR
        assert spans["rebase.run"].attributes is not None
        assert spans["rebase.run"].attributes["rebase.failed_stage"] == "CHECK_BASE"
        assert "rebase.transform" not in spans
