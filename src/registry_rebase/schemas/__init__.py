"""Pydantic schemas for registry documents and runtime configuration."""

from __future__ import annotations

from registry_rebase.schemas.config import (
    PlatformSelector,
    RebaseConfig,
    RetryConfig,
)
from registry_rebase.schemas.image import (
    DOCKER_MANIFEST_LIST_V2,
    DOCKER_MANIFEST_V2,
    Descriptor,
    HistoryEntry,
    ImageConfig,
    Manifest,
    ManifestList,
    RootFS,
)

__all__ = [
    "DOCKER_MANIFEST_LIST_V2",
    "DOCKER_MANIFEST_V2",
    "Descriptor",
    "HistoryEntry",
    "ImageConfig",
    "Manifest",
    "ManifestList",
    "PlatformSelector",
    "RebaseConfig",
    "RetryConfig",
    "RootFS",
]
