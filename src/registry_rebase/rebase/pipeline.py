"""Rebase pipeline: stage sequencing over one explicit context.

The pipeline consists of 10 strictly sequential stages. Each stage reads
what earlier stages put into the PipelineContext and fills in its own part.

Stages:
    1. RESOLVE_SOURCE: Fetch manifest and config of the source image
    2. RESOLVE_SOURCE_BASE: Infer (if needed) and fetch the source base
    3. RESOLVE_TARGET_BASE: Fetch manifest and config of the target base
    4. CHECK_BASE: Verify the source was built on the source base
    5. AUTHORIZE_PUSH: Obtain the multi-scope push token
    6. TRANSFORM: Splice layers and recompute the config digest
    7. UPLOAD_CONFIG: Upload the rebased config blob
    8. VERIFY_CONFIG: Check the config blob is visible (non-fatal)
    9. RECONCILE_LAYERS: Make every layer present in the target repository
    10. PUBLISH: Put the rebased manifest under the target tag

The first RebaseError stops the run; it is returned in the RebaseResult
together with the stage that raised it. Nothing is rolled back.

Example:
    >>> request = RebaseRequest.from_strings(
    ...     "golang:nanoserver-sac2016",
    ...     target="my/golang:nanoserver-1709",
    ...     target_base="microsoft/nanoserver:1709",
    ... )
    >>> with RegistryClient(config) as client:
    ...     result = RebasePipeline(config, client).run(request)
    >>> result.success
    True
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import structlog

from registry_rebase.oci.auth import RegistryTokenProvider, pull_scope, push_scopes
from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.errors import RebaseError
from registry_rebase.oci.reference import ImageReference, parse_image_reference
from registry_rebase.rebase.matcher import infer_source_base
from registry_rebase.rebase.publisher import publish_manifest
from registry_rebase.rebase.resolver import ImageResolver, ResolvedImage
from registry_rebase.rebase.transform import RebasedImage, check_base, rebase_image
from registry_rebase.rebase.uploader import BlobUploader, LayerSummary, donor_repositories
from registry_rebase.schemas.config import RebaseConfig
from registry_rebase.telemetry.tracing import create_span

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PipelineStage(str, Enum):
    """Stage in the rebase pipeline.

    Example:
        >>> PipelineStage.CHECK_BASE.span_name
        'rebase.check_base'
    """

    RESOLVE_SOURCE = "RESOLVE_SOURCE"
    RESOLVE_SOURCE_BASE = "RESOLVE_SOURCE_BASE"
    RESOLVE_TARGET_BASE = "RESOLVE_TARGET_BASE"
    CHECK_BASE = "CHECK_BASE"
    AUTHORIZE_PUSH = "AUTHORIZE_PUSH"
    TRANSFORM = "TRANSFORM"
    UPLOAD_CONFIG = "UPLOAD_CONFIG"
    VERIFY_CONFIG = "VERIFY_CONFIG"
    RECONCILE_LAYERS = "RECONCILE_LAYERS"
    PUBLISH = "PUBLISH"

    @property
    def description(self) -> str:
        """Get human-readable description of this stage.

        Example:
            >>> PipelineStage.TRANSFORM.description
            'Splice layers and recompute the config digest'
        """
        descriptions = {
            PipelineStage.RESOLVE_SOURCE: "Fetch manifest and config of the source image",
            PipelineStage.RESOLVE_SOURCE_BASE: "Infer and fetch the source base image",
            PipelineStage.RESOLVE_TARGET_BASE: "Fetch manifest and config of the target base image",
            PipelineStage.CHECK_BASE: "Verify the source image was built on the source base",
            PipelineStage.AUTHORIZE_PUSH: "Obtain the push token for the target repository",
            PipelineStage.TRANSFORM: "Splice layers and recompute the config digest",
            PipelineStage.UPLOAD_CONFIG: "Upload the rebased config blob",
            PipelineStage.VERIFY_CONFIG: "Check the uploaded config blob",
            PipelineStage.RECONCILE_LAYERS: "Mount or verify every layer in the target repository",
            PipelineStage.PUBLISH: "Publish the rebased manifest",
        }
        return descriptions[self]

    @property
    def span_name(self) -> str:
        """Return the tracing span name for this stage."""
        return f"rebase.{self.value.lower()}"


@dataclass(frozen=True)
class RebaseRequest:
    """The four image references of a rebase.

    Attributes:
        source: Image to rebase.
        target: Where to publish the rebased image.
        target_base: New base image.
        source_base: Base the source was built from; inferred when None.
    """

    source: ImageReference
    target: ImageReference
    target_base: ImageReference
    source_base: ImageReference | None = None

    @classmethod
    def from_strings(
        cls,
        source: str,
        *,
        target: str,
        target_base: str,
        source_base: str | None = None,
    ) -> RebaseRequest:
        """Build a request from image strings.

        Raises:
            ValueError: If a required image string is empty.
        """
        refs = {
            "source": parse_image_reference(source),
            "target": parse_image_reference(target),
            "target_base": parse_image_reference(target_base),
        }
        for name, ref in refs.items():
            if ref is None:
                raise ValueError(f"{name.replace('_', ' ')} image missing")
        return cls(
            source=refs["source"],  # type: ignore[arg-type]
            target=refs["target"],  # type: ignore[arg-type]
            target_base=refs["target_base"],  # type: ignore[arg-type]
            source_base=parse_image_reference(source_base),
        )


@dataclass
class PipelineContext:
    """Mutable state of one pipeline run.

    Each stage fills in its own fields; nothing outside the run holds on
    to the context.
    """

    request: RebaseRequest
    token: str = ""
    source: ResolvedImage | None = None
    source_base: ResolvedImage | None = None
    target_base: ResolvedImage | None = None
    rebased: RebasedImage | None = None
    config_verified: bool | None = None
    layers: LayerSummary | None = None
    manifest_digest: str | None = None


def _require(value: T | None, name: str) -> T:
    if value is None:
        raise RuntimeError(f"Pipeline state '{name}' is not available yet")
    return value


@dataclass(frozen=True)
class RebaseResult:
    """Outcome of a pipeline run.

    On success ``manifest_digest``, ``config_digest`` and ``layers`` are set.
    On failure ``failed_stage`` and ``error`` name what stopped the run.
    """

    success: bool
    target: ImageReference
    manifest_digest: str | None = None
    config_digest: str | None = None
    config_verified: bool | None = None
    layers: LayerSummary | None = None
    failed_stage: PipelineStage | None = None
    error: RebaseError | None = None

    @property
    def exit_code(self) -> int:
        """Return the process exit code for this result."""
        if self.success or self.error is None:
            return 0
        return self.error.exit_code


class RebasePipeline:
    """Run the rebase stages against one registry client."""

    def __init__(self, config: RebaseConfig, client: RegistryClient) -> None:
        self._config = config
        self._client = client
        self._tokens = RegistryTokenProvider(config, client)
        self._resolver = ImageResolver(client, config)
        self._uploader = BlobUploader(client)

    def _stages(self) -> list[tuple[PipelineStage, Callable[[PipelineContext], None]]]:
        return [
            (PipelineStage.RESOLVE_SOURCE, self._resolve_source),
            (PipelineStage.RESOLVE_SOURCE_BASE, self._resolve_source_base),
            (PipelineStage.RESOLVE_TARGET_BASE, self._resolve_target_base),
            (PipelineStage.CHECK_BASE, self._check_base),
            (PipelineStage.AUTHORIZE_PUSH, self._authorize_push),
            (PipelineStage.TRANSFORM, self._transform),
            (PipelineStage.UPLOAD_CONFIG, self._upload_config),
            (PipelineStage.VERIFY_CONFIG, self._verify_config),
            (PipelineStage.RECONCILE_LAYERS, self._reconcile_layers),
            (PipelineStage.PUBLISH, self._publish),
        ]

    def run(self, request: RebaseRequest) -> RebaseResult:
        """Run every stage in order.

        Returns:
            RebaseResult; failures are reported in the result, not raised.
        """
        ctx = PipelineContext(request=request)
        log = logger.bind(
            source=request.source.display_name,
            target=request.target.display_name,
            target_base=request.target_base.display_name,
        )
        log.info("rebase_started")

        run_attributes = {"rebase.target": request.target.display_name}
        with create_span("rebase.run", attributes=run_attributes) as span:
            for stage, handler in self._stages():
                log.debug("stage_started", stage=stage.value, description=stage.description)
                try:
                    with create_span(stage.span_name, attributes={"rebase.stage": stage.value}):
                        handler(ctx)
                except RebaseError as e:
                    log.error("rebase_failed", stage=stage.value, error=str(e), error_kind=e.kind)
                    span.set_attribute("rebase.success", False)
                    span.set_attribute("rebase.failed_stage", stage.value)
                    return RebaseResult(
                        success=False,
                        target=request.target,
                        config_digest=ctx.rebased.config_digest if ctx.rebased else None,
                        config_verified=ctx.config_verified,
                        layers=ctx.layers,
                        failed_stage=stage,
                        error=e,
                    )

            span.set_attribute("rebase.success", True)

        rebased = _require(ctx.rebased, "rebased")
        source = _require(ctx.source, "source")
        log.info(
            "rebase_completed",
            digest=ctx.manifest_digest,
            config_digest=rebased.config_digest,
            source_digest=source.manifest_digest,
        )
        return RebaseResult(
            success=True,
            target=request.target,
            manifest_digest=ctx.manifest_digest,
            config_digest=rebased.config_digest,
            config_verified=ctx.config_verified,
            layers=ctx.layers,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _resolve(self, ref: ImageReference) -> ResolvedImage:
        token = self._tokens.get_token(ref.registry, pull_scope(ref))
        return self._resolver.resolve(ref, token)

    def _resolve_source(self, ctx: PipelineContext) -> None:
        ctx.source = self._resolve(ctx.request.source)

    def _resolve_source_base(self, ctx: PipelineContext) -> None:
        source = _require(ctx.source, "source")
        ref = infer_source_base(ctx.request.target_base, source.config, ctx.request.source_base)
        ctx.source_base = self._resolve(ref)

    def _resolve_target_base(self, ctx: PipelineContext) -> None:
        ctx.target_base = self._resolve(ctx.request.target_base)

    def _check_base(self, ctx: PipelineContext) -> None:
        check_base(_require(ctx.source, "source"), _require(ctx.source_base, "source_base"))

    def _authorize_push(self, ctx: PipelineContext) -> None:
        request = ctx.request
        ctx.token = self._tokens.get_token(
            request.target.registry,
            push_scopes(request.target, request.source, request.target_base),
            preemptive=True,
        )

    def _transform(self, ctx: PipelineContext) -> None:
        ctx.rebased = rebase_image(
            _require(ctx.source, "source"),
            _require(ctx.source_base, "source_base"),
            _require(ctx.target_base, "target_base"),
        )

    def _upload_config(self, ctx: PipelineContext) -> None:
        rebased = _require(ctx.rebased, "rebased")
        self._uploader.upload_config(ctx.request.target, rebased, ctx.token)

    def _verify_config(self, ctx: PipelineContext) -> None:
        rebased = _require(ctx.rebased, "rebased")
        ctx.config_verified = self._uploader.verify_config(
            ctx.request.target, rebased.config_digest, ctx.token
        )

    def _reconcile_layers(self, ctx: PipelineContext) -> None:
        rebased = _require(ctx.rebased, "rebased")
        donors = donor_repositories(ctx.request.source, ctx.request.target_base)
        ctx.layers = self._uploader.reconcile_layers(
            ctx.request.target, rebased.manifest.layers, donors, ctx.token
        )

    def _publish(self, ctx: PipelineContext) -> None:
        rebased = _require(ctx.rebased, "rebased")
        ctx.manifest_digest = publish_manifest(
            self._client, ctx.request.target, rebased.manifest, ctx.token
        )


__all__ = [
    "PipelineContext",
    "PipelineStage",
    "RebasePipeline",
    "RebaseRequest",
    "RebaseResult",
]
