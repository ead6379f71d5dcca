"""registry-rebase: rebase container images onto new base images inside the registry.

The leading base layers of an image are swapped for the layers of a newer
base image by rewriting the manifest and config only. Layer content is
never downloaded or uploaded; missing layers are mounted across
repositories of the same registry.

Example:
    >>> from registry_rebase import RebaseConfig, RebasePipeline, RebaseRequest, RegistryClient
    >>> config = RebaseConfig.from_env()
    >>> request = RebaseRequest.from_strings(
    ...     "golang:nanoserver-sac2016",
    ...     target="my/golang:nanoserver-1709",
    ...     target_base="microsoft/nanoserver:1709",
    ... )
    >>> with RegistryClient(config) as client:
    ...     result = RebasePipeline(config, client).run(request)
"""

from __future__ import annotations

from registry_rebase.oci import (
    ImageReference,
    RebaseError,
    RegistryClient,
    parse_image_reference,
)
from registry_rebase.rebase import (
    PipelineStage,
    RebasePipeline,
    RebaseRequest,
    RebaseResult,
)
from registry_rebase.schemas import RebaseConfig

__version__ = "0.1.0"

__all__ = [
    "ImageReference",
    "PipelineStage",
    "RebaseConfig",
    "RebaseError",
    "RebasePipeline",
    "RebaseRequest",
    "RebaseResult",
    "RegistryClient",
    "__version__",
    "parse_image_reference",
]
