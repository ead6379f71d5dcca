"""Exception hierarchy for registry rebase operations.

All exceptions inherit from RebaseError, so callers can catch every
pipeline failure with a single except clause.

Exception Hierarchy:
    RebaseError (base)
    ├── AuthError                 # Token endpoint failure or malformed token
    ├── NotFoundError             # Manifest or blob fetch returned non-2xx
    ├── PreconditionError         # Source image not built from declared base
    ├── UploadError               # Upload, verify or publish call failed
    ├── MountError                # Every donor repository refused the mount
    ├── ProtocolError             # Unexpected or malformed response body
    └── RegistryUnavailableError  # Transport failure after retries

Exit Codes:
    0 - Success
    1 - General error (RebaseError)
    2 - Usage error (reserved for the CLI)
    3 - AuthError
    4 - NotFoundError
    5 - PreconditionError
    6 - UploadError
    7 - MountError
    8 - ProtocolError
    9 - RegistryUnavailableError

Example:
    >>> from registry_rebase.oci.errors import NotFoundError
    >>> raise NotFoundError("registry-1.docker.io/library/mongo:4", "MANIFEST_UNKNOWN")
    Traceback (most recent call last):
        ...
    NotFoundError: Not found: registry-1.docker.io/library/mongo:4 (MANIFEST_UNKNOWN)
"""

from __future__ import annotations


class RebaseError(Exception):
    """Base exception for all rebase pipeline errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1

    @property
    def kind(self) -> str:
        """Return the short error kind used in results and logs."""
        return type(self).__name__


class AuthError(RebaseError):
    """Raised when a bearer token cannot be obtained.

    Attributes:
        registry: The registry (or token service) that refused the request.
        reason: Description of why authentication failed.
        exit_code: CLI exit code (3).

    Example:
        >>> raise AuthError("auth.docker.io", "HTTP 401")
        Traceback (most recent call last):
            ...
        AuthError: Authentication failed for auth.docker.io: HTTP 401
    """

    exit_code: int = 3

    def __init__(self, registry: str, reason: str) -> None:
        self.registry = registry
        self.reason = reason
        super().__init__(f"Authentication failed for {registry}: {reason}")


class NotFoundError(RebaseError):
    """Raised when a manifest or blob fetch does not succeed.

    Attributes:
        reference: Display name of the image, manifest or blob requested.
        code: Error code reported by the registry (e.g. MANIFEST_UNKNOWN).
        exit_code: CLI exit code (4).
    """

    exit_code: int = 4

    def __init__(self, reference: str, code: str) -> None:
        self.reference = reference
        self.code = code
        super().__init__(f"Not found: {reference} ({code})")


class PreconditionError(RebaseError):
    """Raised when the source image was not built from the declared base.

    Splicing layers in that situation would silently corrupt the result,
    so the pipeline stops before anything is uploaded.

    Attributes:
        reason: Description of the failed check.
        expected: Digest expected at the base position (if applicable).
        actual: Digest found at the base position (if applicable).
        exit_code: CLI exit code (5).

    Example:
        >>> raise PreconditionError(
        ...     "Base layer digest mismatch",
        ...     expected="sha256:aaa",
        ...     actual="sha256:bbb",
        ... )
        Traceback (most recent call last):
            ...
        PreconditionError: Base layer digest mismatch (expected sha256:aaa, got sha256:bbb)
    """

    exit_code: int = 5

    def __init__(
        self,
        reason: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        self.reason = reason
        self.expected = expected
        self.actual = actual

        msg = reason
        if expected is not None and actual is not None:
            msg += f" (expected {expected}, got {actual})"
        super().__init__(msg)


class UploadError(RebaseError):
    """Raised when an upload, blob check or manifest publish fails.

    Attributes:
        operation: The operation that failed (start_upload, put_blob, head_blob, put_manifest).
        status_code: HTTP status code returned by the registry.
        body: Response body, truncated for display.
        exit_code: CLI exit code (6).
    """

    exit_code: int = 6

    def __init__(self, operation: str, status_code: int, body: str = "") -> None:
        self.operation = operation
        self.status_code = status_code
        self.body = body

        msg = f"Upload operation '{operation}' failed with HTTP {status_code}"
        if body:
            msg += f": {body[:200]}"
        super().__init__(msg)


class MountError(RebaseError):
    """Raised when no donor repository could mount a layer.

    Attributes:
        digest: The layer digest that could not be mounted.
        target: The repository the layer was mounted into.
        donors: Donor repositories tried, in order.
        exit_code: CLI exit code (7).
    """

    exit_code: int = 7

    def __init__(self, digest: str, target: str, donors: list[str]) -> None:
        self.digest = digest
        self.target = target
        self.donors = donors
        tried = ", ".join(donors) if donors else "no donors"
        super().__init__(f"Cannot mount {digest} into {target} (tried: {tried})")


class ProtocolError(RebaseError):
    """Raised when a registry response cannot be understood.

    Attributes:
        reference: What was being fetched when the error occurred.
        reason: Description of the malformed content.
        exit_code: CLI exit code (8).
    """

    exit_code: int = 8

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"Unexpected response for {reference}: {reason}")


class RegistryUnavailableError(RebaseError):
    """Raised when the registry is not reachable after retries.

    Attributes:
        registry: The registry host that is unreachable.
        reason: Description of the connectivity failure.
        exit_code: CLI exit code (9).
    """

    exit_code: int = 9

    def __init__(self, registry: str, reason: str) -> None:
        self.registry = registry
        self.reason = reason
        super().__init__(f"Registry unavailable: {registry}: {reason}")


__all__ = [
    "AuthError",
    "MountError",
    "NotFoundError",
    "PreconditionError",
    "ProtocolError",
    "RebaseError",
    "RegistryUnavailableError",
    "UploadError",
]
