"""Image manifest, manifest list and config schemas.

Typed Pydantic v2 records for the registry documents the rebase pipeline
reads and rewrites. Every model keeps unknown fields (``extra="allow"``) so
a document survives a parse/serialize round trip without losing content or
key order, and serializes only the fields it was given (``exclude_unset``).

Minimal schema (Docker Image Manifest V2, Schema 2):
    Manifest: schemaVersion, mediaType, config, layers (non-empty)
    ManifestList: schemaVersion, mediaType, manifests (non-empty)
    ImageConfig: os, os.version (optional), rootfs.diff_ids, history

Documents missing required fields fail validation; callers turn that into
ProtocolError.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    SerializerFunctionWrapHandler,
    ValidatorFunctionWrapHandler,
    model_serializer,
    model_validator,
)

# =============================================================================
# Media Types
# =============================================================================

DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
"""Media type of a single-platform Docker image manifest."""

DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
"""Media type of a Docker manifest list."""

OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
"""Media type of an OCI image index (treated like a manifest list)."""

MANIFEST_LIST_MEDIA_TYPES = frozenset({DOCKER_MANIFEST_LIST_V2, OCI_IMAGE_INDEX})

DOCKER_FOREIGN_LAYER = "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip"
"""Media type of a layer hosted outside the registry (Windows base layers)."""

FOREIGN_LAYER_MEDIA_TYPES = frozenset(
    {
        DOCKER_FOREIGN_LAYER,
        "application/vnd.oci.image.layer.nondistributable.v1.tar",
        "application/vnd.oci.image.layer.nondistributable.v1.tar+gzip",
        "application/vnd.oci.image.layer.nondistributable.v1.tar+zstd",
    }
)
"""Layer media types that are never uploaded or mounted."""


# =============================================================================
# Base
# =============================================================================


class RegistryDocument(BaseModel):
    """Base for registry JSON records.

    Serialization emits keys in the order they were read, with unknown
    fields in place, so a rewritten document differs from the original only
    where it was changed.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    _key_order: list[str] = PrivateAttr(default_factory=list)

    @model_validator(mode="wrap")
    @classmethod
    def _remember_key_order(cls, data: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        model = handler(data)
        if isinstance(data, Mapping):
            model._key_order = list(data)
        return model

    @model_serializer(mode="wrap")
    def _serialize_in_key_order(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        ordered = {key: data[key] for key in self._key_order if key in data}
        ordered.update((key, value) for key, value in data.items() if key not in ordered)
        return ordered


# =============================================================================
# Manifest Schemas
# =============================================================================


class Descriptor(RegistryDocument):
    """Content descriptor for a config or layer blob.

    Examples:
        >>> d = Descriptor.model_validate(
        ...     {"mediaType": DOCKER_FOREIGN_LAYER, "digest": "sha256:abc", "size": 10}
        ... )
        >>> d.is_foreign
        True
    """

    media_type: str = Field(..., alias="mediaType")
    digest: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    urls: list[str] | None = Field(default=None)

    @property
    def is_foreign(self) -> bool:
        """Check whether the blob is resolved outside the registry at pull time."""
        return self.media_type in FOREIGN_LAYER_MEDIA_TYPES


class Manifest(RegistryDocument):
    """Single-platform image manifest.

    ``layers`` is ordered base-to-top: index 0 is the bottom-most layer.
    """

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=DOCKER_MANIFEST_V2, alias="mediaType")
    config: Descriptor
    layers: list[Descriptor] = Field(..., min_length=1)

    def to_document(self) -> dict[str, Any]:
        """Return the manifest as a JSON-compatible dict with registry field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class ManifestListEntry(RegistryDocument):
    """Entry of a manifest list pointing at a platform-specific manifest."""

    media_type: str | None = Field(default=None, alias="mediaType")
    digest: str = Field(..., min_length=1)
    size: int | None = Field(default=None, ge=0)
    platform: dict[str, Any] | None = Field(default=None)


class ManifestList(RegistryDocument):
    """Manifest of manifests selecting a platform-specific manifest by digest."""

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=DOCKER_MANIFEST_LIST_V2, alias="mediaType")
    manifests: list[ManifestListEntry] = Field(..., min_length=1)


def is_manifest_list(document: Mapping[str, Any]) -> bool:
    """Check whether a fetched manifest document is a manifest list.

    Args:
        document: Parsed manifest JSON.

    Returns:
        True if the media type names a list/index or a ``manifests`` key is present.
    """
    return document.get("mediaType") in MANIFEST_LIST_MEDIA_TYPES or "manifests" in document


# =============================================================================
# Config Schemas
# =============================================================================


class RootFS(RegistryDocument):
    """Root filesystem section of an image config."""

    type: str = Field(default="layers")
    diff_ids: list[str]


class HistoryEntry(RegistryDocument):
    """One entry of the image history.

    Entries with ``empty_layer`` set do not correspond to a layer.
    """

    created_by: str | None = Field(default=None)
    empty_layer: bool | None = Field(default=None)


class ImageConfig(RegistryDocument):
    """Image configuration blob.

    Only the fields the rebase touches are typed; everything else
    (architecture, config, created, ...) is carried along as extra fields.
    """

    os: str = Field(..., min_length=1)
    os_version: str | None = Field(default=None, alias="os.version")
    rootfs: RootFS
    history: list[HistoryEntry] = Field(default_factory=list)

    @property
    def diff_ids(self) -> list[str]:
        """Return the ordered diff IDs (uncompressed layer digests)."""
        return self.rootfs.diff_ids

    @property
    def layer_history_count(self) -> int:
        """Return the number of history entries that produced a layer."""
        return sum(1 for entry in self.history if not entry.empty_layer)

    def to_document(self) -> dict[str, Any]:
        """Return the config as a JSON-compatible dict with registry field names.

        An unset ``os.version`` is omitted rather than written as null.
        """
        document = self.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if document.get("os.version") is None:
            document.pop("os.version", None)
        return document


def canonical_json(document: Mapping[str, Any]) -> bytes:
    """Serialize a document to compact UTF-8 JSON.

    Key order is preserved and no whitespace is emitted, so identical
    documents always produce identical bytes.

    Example:
        >>> canonical_json({"os": "windows", "rootfs": {"diff_ids": []}})
        b'{"os":"windows","rootfs":{"diff_ids":[]}}'
    """
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


__all__ = [
    "DOCKER_FOREIGN_LAYER",
    "DOCKER_MANIFEST_LIST_V2",
    "DOCKER_MANIFEST_V2",
    "Descriptor",
    "FOREIGN_LAYER_MEDIA_TYPES",
    "HistoryEntry",
    "ImageConfig",
    "MANIFEST_LIST_MEDIA_TYPES",
    "Manifest",
    "ManifestList",
    "ManifestListEntry",
    "OCI_IMAGE_INDEX",
    "RegistryDocument",
    "RootFS",
    "canonical_json",
    "is_manifest_list",
]
