"""Manifest and config resolution.

Fetches an image's manifest and config from its registry. Manifest lists
are followed by re-fetching the selected entry by digest, in a loop bounded
by ``RebaseConfig.max_manifest_list_depth``.

Example:
    >>> resolver = ImageResolver(client, config)
    >>> image = resolver.resolve(parse_image_reference("acme/app:2.1"), token)
    >>> len(image.manifest.layers)
    5
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.errors import NotFoundError, ProtocolError
from registry_rebase.oci.reference import ImageReference
from registry_rebase.schemas.config import RebaseConfig
from registry_rebase.schemas.image import (
    ImageConfig,
    Manifest,
    ManifestList,
    ManifestListEntry,
    is_manifest_list,
)

logger = structlog.get_logger(__name__)

PLATFORM_UNKNOWN = "PLATFORM_UNKNOWN"
"""Error code used when no manifest-list entry matches the configured platform."""


@dataclass(frozen=True)
class ResolvedImage:
    """An image reference together with its fetched manifest and config.

    Attributes:
        reference: The reference that was resolved.
        manifest: The single-platform manifest.
        config: The image config referenced by the manifest.
        manifest_digest: Digest of the manifest as reported by the registry.
    """

    reference: ImageReference
    manifest: Manifest
    config: ImageConfig
    manifest_digest: str | None = None


class ImageResolver:
    """Resolve image references into manifests and configs."""

    def __init__(self, client: RegistryClient, config: RebaseConfig) -> None:
        self._client = client
        self._config = config

    def select_entry(self, ref: ImageReference, manifest_list: ManifestList) -> ManifestListEntry:
        """Pick the manifest-list entry to follow.

        The first entry matching the configured platform wins. Without a
        configured platform the first entry is used.

        Raises:
            NotFoundError: If a platform is configured and no entry matches.
        """
        selector = self._config.platform
        if selector is None:
            return manifest_list.manifests[0]

        for entry in manifest_list.manifests:
            if selector.matches(entry.platform):
                return entry
        raise NotFoundError(f"{ref.display_name} ({selector})", PLATFORM_UNKNOWN)

    def fetch_manifest(self, ref: ImageReference, token: str) -> tuple[Manifest, str | None]:
        """Fetch the single-platform manifest for ``ref``.

        Args:
            ref: Image reference; its tag (or digest) is fetched first.
            token: Bearer token with pull scope on the repository.

        Returns:
            Tuple of (manifest, manifest digest reported by the registry).

        Raises:
            NotFoundError: If a fetch fails or no list entry matches.
            ProtocolError: If a document is malformed or lists nest too deeply.
        """
        max_depth = self._config.max_manifest_list_depth
        reference = ref.tag

        for depth in range(max_depth + 1):
            document, digest = self._client.get_manifest(ref, reference, token)
            logger.debug(
                "manifest_fetched",
                image=ref.display_name,
                reference=reference,
                manifest=document,
            )

            if not is_manifest_list(document):
                return self._validate(Manifest, document, ref, reference), digest

            manifest_list = self._validate(ManifestList, document, ref, reference)
            entry = self.select_entry(ref, manifest_list)
            logger.debug(
                "manifest_list_entry_selected",
                image=ref.display_name,
                digest=entry.digest,
                platform=entry.platform,
                depth=depth + 1,
            )
            reference = entry.digest

        raise ProtocolError(
            ref.display_name,
            f"manifest list nesting exceeds depth {max_depth}",
        )

    def fetch_config(self, ref: ImageReference, manifest: Manifest, token: str) -> ImageConfig:
        """Fetch and parse the config blob referenced by ``manifest``.

        Raises:
            NotFoundError: If the blob fetch fails.
            ProtocolError: If the config is malformed.
        """
        digest = manifest.config.digest
        document = self._client.get_blob_json(ref, digest, token)
        config = self._validate(ImageConfig, document, ref, digest)
        logger.debug(
            "config_fetched",
            image=ref.display_name,
            os_version=config.os_version,
            diff_ids=config.diff_ids,
        )
        return config

    def resolve(self, ref: ImageReference, token: str) -> ResolvedImage:
        """Fetch manifest and config for ``ref``."""
        manifest, digest = self.fetch_manifest(ref, token)
        config = self.fetch_config(ref, manifest, token)
        logger.info(
            "image_resolved",
            image=ref.display_name,
            layers=len(manifest.layers),
            os_version=config.os_version,
        )
        return ResolvedImage(
            reference=ref,
            manifest=manifest,
            config=config,
            manifest_digest=digest,
        )

    @staticmethod
    def _validate(model: Any, document: dict[str, Any], ref: ImageReference, reference: str) -> Any:
        try:
            return model.model_validate(document)
        except ValidationError as e:
            raise ProtocolError(
                f"{ref.registry}/{ref.imagepath}:{reference}",
                f"invalid {model.__name__}: {e.error_count()} validation error(s)",
            ) from e


__all__ = [
    "ImageResolver",
    "PLATFORM_UNKNOWN",
    "ResolvedImage",
]
