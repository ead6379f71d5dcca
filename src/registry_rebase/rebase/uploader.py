"""Config upload and layer reconciliation in the target repository.

Only the rebased config is ever uploaded. Layers are never transferred:
each one is checked with HEAD and, when absent, mounted from a donor
repository that already holds it (the source repository first, then the
target base repository).

Example:
    >>> uploader = BlobUploader(client)
    >>> uploader.upload_config(target, rebased, token)
    >>> summary = uploader.reconcile_layers(target, rebased.manifest.layers, donors, token)
    >>> summary.count(LayerOutcome.MOUNTED)
    2
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.errors import MountError, UploadError
from registry_rebase.oci.reference import ImageReference
from registry_rebase.rebase.transform import RebasedImage
from registry_rebase.schemas.image import Descriptor

logger = structlog.get_logger(__name__)


class LayerOutcome(str, Enum):
    """How a layer ended up present in the target repository."""

    PRESENT = "present"
    """Already in the target repository."""

    MOUNTED = "mounted"
    """Mounted from a donor repository."""

    SKIPPED = "skipped"
    """Foreign layer, fetched from its external URL at pull time."""


@dataclass
class LayerSummary:
    """Per-layer reconciliation outcomes, keyed by digest.

    Attributes:
        outcomes: Outcome per layer digest, in manifest order.
        mounted_from: Donor repository per mounted layer digest.
    """

    outcomes: dict[str, LayerOutcome] = field(default_factory=dict)
    mounted_from: dict[str, str] = field(default_factory=dict)

    def record(self, digest: str, outcome: LayerOutcome, donor: str | None = None) -> None:
        self.outcomes[digest] = outcome
        if donor is not None:
            self.mounted_from[digest] = donor

    def count(self, outcome: LayerOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value is outcome)

    def to_dict(self) -> dict[str, int]:
        """Return layer counts per outcome."""
        return {outcome.value: self.count(outcome) for outcome in LayerOutcome}


def donor_repositories(source: ImageReference, target_base: ImageReference) -> list[str]:
    """Return the ordered donor repositories for layer mounts, without duplicates."""
    donors: list[str] = []
    for path in (source.imagepath, target_base.imagepath):
        if path not in donors:
            donors.append(path)
    return donors


class BlobUploader:
    """Upload the rebased config and make every layer present in the target."""

    def __init__(self, client: RegistryClient) -> None:
        self._client = client

    def upload_config(self, target: ImageReference, rebased: RebasedImage, token: str) -> None:
        """Upload the rebased config blob through a fresh upload session.

        Raises:
            UploadError: If the session cannot be opened or the PUT fails.
            ProtocolError: If the session has no Location.
        """
        location = self._client.start_upload(target, token)

        self._client.put_blob(location, rebased.config_digest, rebased.config_bytes, token)
        logger.info(
            "config_uploaded",
            target=target.display_name,
            digest=rebased.config_digest,
            size=len(rebased.config_bytes),
            location=location,
        )

    def verify_config(self, target: ImageReference, digest: str, token: str) -> bool:
        """Check that the uploaded config is visible in the target repository.

        A failed check is logged and reported, never raised.
        """
        status = self._client.head_blob(target, digest, token)
        if status != 200:
            logger.warning(
                "config_not_verified",
                target=target.display_name,
                digest=digest,
                status_code=status,
            )
            return False
        logger.debug("config_verified", target=target.display_name, digest=digest)
        return True

    def _mount(
        self,
        target: ImageReference,
        digest: str,
        donors: Sequence[str],
        token: str,
    ) -> str:
        for donor in donors:
            if self._client.mount_blob(target, digest, donor, token):
                return donor
            logger.info("mount_fallback", digest=digest, donor=donor)
        raise MountError(digest, f"{target.registry}/{target.imagepath}", list(donors))

    def reconcile_layers(
        self,
        target: ImageReference,
        layers: Sequence[Descriptor],
        donors: Sequence[str],
        token: str,
    ) -> LayerSummary:
        """Make every distributable layer present in the target repository.

        Layers are handled one at a time in manifest order. Present layers
        are left alone; absent layers are mounted from the first donor that
        accepts.

        Args:
            target: Target repository.
            layers: Layers of the rebased manifest.
            donors: Donor repository paths, tried in order.
            token: Bearer token with push on the target and pull on the donors.

        Returns:
            LayerSummary with one outcome per distinct layer digest.

        Raises:
            MountError: If every donor refuses a mount.
            UploadError: If HEAD answers anything other than 200 or 404.
        """
        summary = LayerSummary()

        for layer in layers:
            digest = layer.digest
            if digest in summary.outcomes:
                continue

            if layer.is_foreign:
                logger.debug("layer_skipped", digest=digest, media_type=layer.media_type)
                summary.record(digest, LayerOutcome.SKIPPED)
                continue

            status = self._client.head_blob(target, digest, token)
            if status == 200:
                logger.debug("layer_present", digest=digest)
                summary.record(digest, LayerOutcome.PRESENT)
            elif status == 404:
                donor = self._mount(target, digest, donors, token)
                logger.info("layer_mounted", digest=digest, donor=donor)
                summary.record(digest, LayerOutcome.MOUNTED, donor)
            else:
                raise UploadError("head_blob", status)

        logger.info("layers_reconciled", target=target.display_name, **summary.to_dict())
        return summary


__all__ = [
    "BlobUploader",
    "LayerOutcome",
    "LayerSummary",
    "donor_repositories",
]
