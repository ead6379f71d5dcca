"""Publish the rebased manifest under the target tag."""

from __future__ import annotations

import json

import structlog

from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.reference import ImageReference
from registry_rebase.rebase.transform import calculate_digest
from registry_rebase.schemas.image import DOCKER_MANIFEST_V2, Manifest

logger = structlog.get_logger(__name__)


def manifest_bytes(manifest: Manifest) -> bytes:
    """Serialize a manifest the way it is published (4-space indented JSON)."""
    return json.dumps(manifest.to_document(), indent=4).encode("utf-8")


def publish_manifest(
    client: RegistryClient,
    target: ImageReference,
    manifest: Manifest,
    token: str,
) -> str:
    """PUT ``manifest`` to ``target``'s tag.

    Returns:
        The manifest digest reported by the registry, or the sha256 of the
        published bytes when the registry does not report one.

    Raises:
        UploadError: If the registry does not answer 201.
    """
    content = manifest_bytes(manifest)
    reported = client.put_manifest(target, target.tag, content, DOCKER_MANIFEST_V2, token)
    digest = reported or calculate_digest(content)
    logger.info("manifest_published", target=target.display_name, digest=digest)
    return digest


__all__ = ["manifest_bytes", "publish_manifest"]
