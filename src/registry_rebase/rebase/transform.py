"""Layer splicing and config digest computation.

Given a source image, the base it was built from (source base) and a new
base (target base), the rebased image is produced by replacing the leading
source-base portion of the layer list, the diff_ids and the history with
the target base's, then recomputing the config digest.

    source:       [b1 b2 b3 | a1 a2]      source base: [b1 b2 b3]
    target base:  [n1 n2 n3 n4]
    rebased:      [n1 n2 n3 n4 | a1 a2]

The function is pure: inputs are never modified and identical inputs
produce byte-identical output.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any

import structlog

from registry_rebase.oci.errors import PreconditionError
from registry_rebase.rebase.resolver import ResolvedImage
from registry_rebase.schemas.image import (
    Descriptor,
    HistoryEntry,
    ImageConfig,
    Manifest,
    canonical_json,
)

logger = structlog.get_logger(__name__)


def calculate_digest(content: bytes) -> str:
    """Calculate SHA256 digest of content.

    Args:
        content: Bytes to hash.

    Returns:
        Digest in format "sha256:<hex>".

    Example:
        >>> calculate_digest(b"{}")
        'sha256:44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a'
    """
    return f"sha256:{hashlib.sha256(content).hexdigest()}"


@dataclass(frozen=True)
class RebasedImage:
    """Result of a rebase transform.

    Attributes:
        manifest: Rebased manifest with the new config digest and size.
        config: Rebased image config.
        config_bytes: Exact bytes to upload as the config blob.
        config_digest: sha256 digest of ``config_bytes``.
    """

    manifest: Manifest
    config: ImageConfig
    config_bytes: bytes
    config_digest: str


def check_base(source: ResolvedImage, source_base: ResolvedImage) -> None:
    """Verify that ``source`` was built on top of ``source_base``.

    Raises:
        PreconditionError: If the bottom-most layers differ or the source base
            has more layers than the source.
    """
    expected = source_base.manifest.layers[0].digest
    actual = source.manifest.layers[0].digest
    if expected != actual:
        raise PreconditionError(
            f"{source.reference.display_name} is not based on {source_base.reference.display_name}",
            expected=expected,
            actual=actual,
        )

    if len(source_base.manifest.layers) > len(source.manifest.layers):
        raise PreconditionError(
            f"{source_base.reference.display_name} has more layers "
            f"({len(source_base.manifest.layers)}) than {source.reference.display_name} "
            f"({len(source.manifest.layers)})"
        )


def _documents(items: list[Descriptor] | list[HistoryEntry]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json", by_alias=True, exclude_unset=True) for item in items]


def rebase_image(
    source: ResolvedImage,
    source_base: ResolvedImage,
    target_base: ResolvedImage,
) -> RebasedImage:
    """Splice the target base under the application layers of ``source``.

    Args:
        source: The image to rebase.
        source_base: The base ``source`` was built from.
        target_base: The new base.

    Returns:
        RebasedImage with manifest, config and the serialized config blob.

    Raises:
        PreconditionError: If ``source`` is not built on ``source_base``.
    """
    check_base(source, source_base)

    config_doc = source.config.to_document()
    if target_base.config.os_version is None:
        config_doc.pop("os.version", None)
    else:
        config_doc["os.version"] = target_base.config.os_version

    base_diff_ids = len(source_base.config.diff_ids)
    config_doc["rootfs"]["diff_ids"] = (
        list(target_base.config.diff_ids) + source.config.diff_ids[base_diff_ids:]
    )

    if "history" in config_doc or target_base.config.history:
        base_history = len(source_base.config.history)
        config_doc["history"] = (
            _documents(target_base.config.history)
            + _documents(source.config.history)[base_history:]
        )

    config_bytes = canonical_json(config_doc)
    config_digest = calculate_digest(config_bytes)

    base_layers = len(source_base.manifest.layers)
    manifest_doc = source.manifest.to_document()
    manifest_doc["layers"] = (
        _documents(target_base.manifest.layers) + _documents(source.manifest.layers)[base_layers:]
    )
    manifest_doc["config"]["digest"] = config_digest
    manifest_doc["config"]["size"] = len(config_bytes)

    manifest = Manifest.model_validate(manifest_doc)
    config = ImageConfig.model_validate(config_doc)

    if len(config.diff_ids) != len(manifest.layers):
        logger.warning(
            "diff_id_count_mismatch",
            diff_ids=len(config.diff_ids),
            layers=len(manifest.layers),
        )
    if config.history and config.layer_history_count != len(config.diff_ids):
        logger.warning(
            "history_count_mismatch",
            layer_history=config.layer_history_count,
            diff_ids=len(config.diff_ids),
        )

    logger.info(
        "image_rebased",
        source=source.reference.display_name,
        removed_layers=base_layers,
        added_layers=len(target_base.manifest.layers),
        layers=len(manifest.layers),
        config_digest=config_digest,
    )
    logger.debug("rebased_manifest", manifest=manifest_doc)
    logger.debug("rebased_config", config=config_doc)

    return RebasedImage(
        manifest=manifest,
        config=config,
        config_bytes=config_bytes,
        config_digest=config_digest,
    )


__all__ = [
    "RebasedImage",
    "calculate_digest",
    "check_base",
    "rebase_image",
]
