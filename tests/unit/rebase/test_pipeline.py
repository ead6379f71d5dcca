"""Unit tests for the rebase pipeline.

The pipeline runs against the in-memory registry seeded with a nanoserver
sac2016 image, its base and the 1709 base.
"""

from __future__ import annotations

import httpx
import pytest
from structlog.testing import capture_logs

from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.errors import (
    AuthError,
    MountError,
    NotFoundError,
    PreconditionError,
    ProtocolError,
)
from registry_rebase.rebase.pipeline import PipelineStage, RebasePipeline, RebaseRequest
from registry_rebase.rebase.uploader import LayerOutcome
from registry_rebase.schemas.config import RebaseConfig
from testing.fixtures.registry import (
    HUB,
    TARGET_OS_VERSION,
    FakeRegistry,
    WindowsScenario,
    digest_of,
    fake_digest,
)

TARGET_REPO = "my/golang"
TARGET_TAG = "nanoserver-1709"


def _request(scenario: WindowsScenario, **overrides: str) -> RebaseRequest:
    values = {
        "target": scenario.target_image,
        "target_base": scenario.target_base_image,
    }
    values.update(overrides)
    return RebaseRequest.from_strings(scenario.source_image, **values)


@pytest.fixture
def pipeline(rebase_config: RebaseConfig, registry_client: RegistryClient) -> RebasePipeline:
    return RebasePipeline(rebase_config, registry_client)


class TestPipelineStage:
    """Tests for PipelineStage."""

    def test_stage_order(self) -> None:
        """Test the ten stages are declared in execution order."""
        assert [stage.value for stage in PipelineStage] == [
            "RESOLVE_SOURCE",
            "RESOLVE_SOURCE_BASE",
            "RESOLVE_TARGET_BASE",
            "CHECK_BASE",
            "AUTHORIZE_PUSH",
            "TRANSFORM",
            "UPLOAD_CONFIG",
            "VERIFY_CONFIG",
            "RECONCILE_LAYERS",
            "PUBLISH",
        ]

    @pytest.mark.parametrize("stage", list(PipelineStage))
    def test_every_stage_described(self, stage: PipelineStage) -> None:
        """Test each stage has a description and a span name."""
        assert stage.description
        assert stage.span_name == f"rebase.{stage.value.lower()}"


class TestRebaseRequest:
    """Tests for RebaseRequest.from_strings."""

    def test_parses_references(self) -> None:
        """Test image strings are parsed and an absent source base stays None."""
        request = RebaseRequest.from_strings("golang:1", target="my/golang:2", target_base="base:2")

        assert request.source.imagepath == "library/golang"
        assert request.target.imagepath == "my/golang"
        assert request.source_base is None

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"source": "", "target": "a:1", "target_base": "b:1"}, "source image missing"),
            ({"source": "s:1", "target": "", "target_base": "b:1"}, "target image missing"),
            ({"source": "s:1", "target": "a:1", "target_base": ""}, "target base image missing"),
        ],
    )
    def test_missing_image_raises(self, kwargs: dict[str, str], message: str) -> None:
        """Test empty image strings raise ValueError naming the image."""
        source = kwargs.pop("source")

        with pytest.raises(ValueError, match=message):
            RebaseRequest.from_strings(source, **kwargs)


class TestRebasePipelineSuccess:
    """Tests for a complete rebase."""

    def test_rebased_manifest_published(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test the target tag receives the spliced manifest and the rebased config."""
        result = pipeline.run(_request(windows_scenario))

        assert result.success
        assert result.exit_code == 0
        published = fake_registry.published(HUB, TARGET_REPO, TARGET_TAG)
        assert published is not None
        expected_layers = [d["digest"] for d in windows_scenario.target_base.manifest["layers"]] + [
            d["digest"] for d in windows_scenario.source.manifest["layers"][3:]
        ]
        assert [d["digest"] for d in published["layers"]] == expected_layers
        assert published["config"]["digest"] == result.config_digest
        stored = fake_registry.manifests[(HUB, TARGET_REPO, TARGET_TAG)]
        assert result.manifest_digest == digest_of(stored)

    def test_config_uploaded_and_verified(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test the rebased config is in the target repository and verified."""
        result = pipeline.run(_request(windows_scenario))

        assert result.config_verified is True
        assert result.config_digest is not None
        config = fake_registry.blobs[(HUB, TARGET_REPO)][result.config_digest]
        assert f'"os.version":"{TARGET_OS_VERSION}"'.encode() in config
        assert fake_digest("diff-golang-env").encode() in config

    def test_layers_mounted_from_donors(
        self, pipeline: RebasePipeline, windows_scenario: WindowsScenario
    ) -> None:
        """Test app layers come from the source and base layers from the target base."""
        result = pipeline.run(_request(windows_scenario))

        assert result.layers is not None
        assert result.layers.to_dict() == {"present": 0, "mounted": 5, "skipped": 1}
        target_base_layers = windows_scenario.target_base.manifest["layers"]
        source_layers = windows_scenario.source.manifest["layers"]
        assert result.layers.outcomes[target_base_layers[0]["digest"]] is LayerOutcome.SKIPPED
        assert result.layers.mounted_from[target_base_layers[1]["digest"]] == "microsoft/nanoserver"
        assert result.layers.mounted_from[source_layers[4]["digest"]] == "library/golang"

    def test_layers_already_in_target_are_present(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test a rerun finds layers that are already in the target repository."""
        app_digest = windows_scenario.source.manifest["layers"][3]["digest"]
        fake_registry.add_blob(HUB, TARGET_REPO, app_digest)

        result = pipeline.run(_request(windows_scenario))

        assert result.layers is not None
        assert result.layers.outcomes[app_digest] is LayerOutcome.PRESENT
        assert result.layers.to_dict() == {"present": 1, "mounted": 4, "skipped": 1}

    def test_pull_tokens_use_challenge(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test pull tokens send credentials only after the 401 challenge."""
        pipeline.run(_request(windows_scenario))

        first = fake_registry.token_requests()[0]
        assert "Authorization" not in first.headers
        assert first.url.params.get_list("scope") == ["repository:library/golang:pull"]
        assert first.url.params["service"] == "registry.docker.io"
        assert first.url.params["account"] == "ci-user"

    def test_push_token_is_preemptive_with_all_scopes(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test the push token is requested once with basic auth and three scopes."""
        pipeline.run(_request(windows_scenario))

        push = [r for r in fake_registry.token_requests() if "push" in str(r.url.params)]
        assert len(push) == 1
        assert push[0].headers["Authorization"].startswith("Basic ")
        assert push[0].url.params.get_list("scope") == [
            "repository:my/golang:push,pull",
            "repository:library/golang:pull",
            "repository:microsoft/nanoserver:pull",
        ]

    def test_explicit_source_base(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test an explicit source base is used instead of the inferred one."""
        fake_registry.manifests[(HUB, "microsoft/nanoserver", "sac2016")] = fake_registry.manifests[
            (HUB, "microsoft/nanoserver", windows_scenario.source_base.manifest_digest)
        ]

        request = _request(windows_scenario, source_base="microsoft/nanoserver:sac2016")
        result = pipeline.run(request)

        assert result.success
        assert fake_registry.requests_for("GET", "/microsoft/nanoserver/manifests/sac2016")

    def test_completion_logged_with_digests(
        self, pipeline: RebasePipeline, windows_scenario: WindowsScenario
    ) -> None:
        """Test the completion event names the published and the source manifest digests."""
        with capture_logs() as logs:
            result = pipeline.run(_request(windows_scenario))

        completed = [log for log in logs if log["event"] == "rebase_completed"]
        assert len(completed) == 1
        assert completed[0]["digest"] == result.manifest_digest
        assert completed[0]["source_digest"] == windows_scenario.source.manifest_digest
        assert completed[0]["config_digest"] == result.config_digest


class TestRebasePipelineFailure:
    """Tests for failed runs."""

    def test_base_mismatch_publishes_nothing(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test a wrong source base stops at CHECK_BASE before any write."""
        result = pipeline.run(_request(windows_scenario, source_base="microsoft/nanoserver:1709"))

        assert not result.success
        assert result.failed_stage is PipelineStage.CHECK_BASE
        assert isinstance(result.error, PreconditionError)
        assert result.exit_code == 5
        assert fake_registry.published(HUB, TARGET_REPO, TARGET_TAG) is None
        assert not fake_registry.requests_for("POST")
        assert not fake_registry.requests_for("PUT")

    def test_missing_source_base_tag(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test an inferred source base that does not exist fails at RESOLVE_SOURCE_BASE."""
        del fake_registry.manifests[(HUB, "microsoft/nanoserver", "10.0.14393.1593")]

        result = pipeline.run(_request(windows_scenario))

        assert result.failed_stage is PipelineStage.RESOLVE_SOURCE_BASE
        assert isinstance(result.error, NotFoundError)
        assert result.error.code == "MANIFEST_UNKNOWN"
        assert result.exit_code == 4

    def test_rejected_credentials(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test a token service that rejects the credentials fails at RESOLVE_SOURCE."""
        fake_registry.queue("GET", "/token", httpx.Response(401), httpx.Response(401))

        result = pipeline.run(_request(windows_scenario))

        assert result.failed_stage is PipelineStage.RESOLVE_SOURCE
        assert isinstance(result.error, AuthError)
        assert result.exit_code == 3
        assert result.config_digest is None

    def test_mount_refused_leaves_config_uploaded(
        self,
        pipeline: RebasePipeline,
        fake_registry: FakeRegistry,
        windows_scenario: WindowsScenario,
    ) -> None:
        """Test a failed mount stops the run without rolling back the config upload."""
        fake_registry.refuse_mounts.update({"library/golang", "microsoft/nanoserver"})

        result = pipeline.run(_request(windows_scenario))

        assert result.failed_stage is PipelineStage.RECONCILE_LAYERS
        assert isinstance(result.error, MountError)
        assert result.exit_code == 7
        assert result.config_digest is not None
        assert fake_registry.has_blob(HUB, TARGET_REPO, result.config_digest)
        assert fake_registry.published(HUB, TARGET_REPO, TARGET_TAG) is None

    def test_redirect_loop_is_reported_in_result(
        self, rebase_config: RebaseConfig, windows_scenario: WindowsScenario
    ) -> None:
        """Test a registry that redirects forever fails the run instead of raising."""

        def loop(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": str(request.url)})

        http_client = httpx.Client(transport=httpx.MockTransport(loop), follow_redirects=True)
        with RegistryClient(rebase_config, http_client=http_client) as client:
            result = RebasePipeline(rebase_config, client).run(_request(windows_scenario))

        assert not result.success
        assert result.failed_stage is PipelineStage.RESOLVE_SOURCE
        assert isinstance(result.error, ProtocolError)
        assert result.exit_code == 8
