"""Registry access: references, tokens, HTTP client, errors and retries."""

from __future__ import annotations

from registry_rebase.oci.auth import (
    ChallengeBasicAuth,
    RegistryTokenProvider,
    TokenScope,
    pull_scope,
    push_scopes,
)
from registry_rebase.oci.client import RegistryClient, registry_error_code
from registry_rebase.oci.errors import (
    AuthError,
    MountError,
    NotFoundError,
    PreconditionError,
    ProtocolError,
    RebaseError,
    RegistryUnavailableError,
    UploadError,
)
from registry_rebase.oci.reference import ImageReference, parse_image_reference
from registry_rebase.oci.resilience import RetryPolicy

__all__ = [
    "AuthError",
    "ChallengeBasicAuth",
    "ImageReference",
    "MountError",
    "NotFoundError",
    "PreconditionError",
    "ProtocolError",
    "RebaseError",
    "RegistryClient",
    "RegistryTokenProvider",
    "RegistryUnavailableError",
    "RetryPolicy",
    "TokenScope",
    "UploadError",
    "parse_image_reference",
    "pull_scope",
    "push_scopes",
    "registry_error_code",
]
