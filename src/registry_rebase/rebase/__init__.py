"""Rebase stages and the pipeline that sequences them."""

from __future__ import annotations

from registry_rebase.rebase.matcher import infer_source_base
from registry_rebase.rebase.pipeline import (
    PipelineContext,
    PipelineStage,
    RebasePipeline,
    RebaseRequest,
    RebaseResult,
)
from registry_rebase.rebase.publisher import publish_manifest
from registry_rebase.rebase.resolver import ImageResolver, ResolvedImage
from registry_rebase.rebase.transform import RebasedImage, calculate_digest, rebase_image
from registry_rebase.rebase.uploader import BlobUploader, LayerOutcome, LayerSummary

__all__ = [
    "BlobUploader",
    "ImageResolver",
    "LayerOutcome",
    "LayerSummary",
    "PipelineContext",
    "PipelineStage",
    "RebasePipeline",
    "RebaseRequest",
    "RebaseResult",
    "RebasedImage",
    "ResolvedImage",
    "calculate_digest",
    "infer_source_base",
    "publish_manifest",
    "rebase_image",
]
