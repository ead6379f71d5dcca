"""Source base inference.

Windows base images are tagged by build number, and the same build number
names equivalent base images across Windows base repositories. When no
source base is given, the target base repository is therefore queried with
the source image's ``os.version`` as tag. This is a heuristic: callers that
need an exact match pass the source base explicitly.
"""

from __future__ import annotations

import structlog

from registry_rebase.oci.errors import PreconditionError
from registry_rebase.oci.reference import ImageReference
from registry_rebase.schemas.image import ImageConfig

logger = structlog.get_logger(__name__)


def infer_source_base(
    target_base: ImageReference,
    source_config: ImageConfig,
    explicit: ImageReference | None = None,
) -> ImageReference:
    """Return the source base reference to resolve.

    Args:
        target_base: Reference of the new base image.
        source_config: Config of the image being rebased.
        explicit: Source base supplied by the caller, if any.

    Returns:
        ``explicit`` when given, otherwise ``target_base`` re-tagged with
        the source ``os.version``.

    Raises:
        PreconditionError: If inference is needed and the source config has
            no ``os.version``.

    Example:
        >>> base = infer_source_base(target_base, source_config)
        >>> base.tag
        '10.0.14393.1593'
    """
    if explicit is not None:
        return explicit

    os_version = source_config.os_version
    if not os_version:
        raise PreconditionError(
            "Cannot infer source base image: source config has no os.version; "
            "pass the source base explicitly"
        )

    inferred = target_base.with_tag(os_version)
    logger.info("source_base_inferred", source_base=inferred.display_name)
    return inferred


__all__ = ["infer_source_base"]
