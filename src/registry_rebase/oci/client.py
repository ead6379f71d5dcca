"""Registry HTTP client for Docker Registry HTTP API v2.

Thin, stateless wrapper over an ``httpx.Client`` exposing exactly the
registry calls the rebase pipeline needs. Bearer tokens are passed per call
because they change from stage to stage; the client itself never stores
one.

Endpoints:
    GET  /v2/<path>/manifests/<tag-or-digest>
    GET  /v2/<path>/blobs/<digest>
    HEAD /v2/<path>/blobs/<digest>
    POST /v2/<path>/blobs/uploads/                       (start upload session)
    PUT  <Location>?digest=<digest>                      (complete upload)
    POST /v2/<path>/blobs/uploads/?from=<repo>&mount=<d> (cross-repository mount)
    PUT  /v2/<path>/manifests/<tag>

GET and HEAD requests are retried through RetryPolicy; POST and PUT are
sent exactly once.

Example:
    >>> with RegistryClient(RebaseConfig.from_env()) as client:
    ...     document, digest = client.get_manifest(ref, ref.tag, token)
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
import structlog

from registry_rebase.oci.errors import (
    NotFoundError,
    ProtocolError,
    RegistryUnavailableError,
    UploadError,
)
from registry_rebase.oci.reference import ImageReference
from registry_rebase.oci.resilience import RetryPolicy
from registry_rebase.schemas.config import RebaseConfig
from registry_rebase.schemas.image import DOCKER_MANIFEST_LIST_V2, DOCKER_MANIFEST_V2

logger = structlog.get_logger(__name__)

MANIFEST_ACCEPT = f"{DOCKER_MANIFEST_V2}, {DOCKER_MANIFEST_LIST_V2}"
"""Accept header for manifest fetches (single manifest and manifest list)."""

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


def registry_error_code(response: httpx.Response) -> str:
    """Extract the registry error code from an error response.

    Registries answer failures with ``{"errors": [{"code": ..., "message": ...}]}``.

    Returns:
        The first error code, or ``HTTP <status>`` when the body carries none.
    """
    try:
        body = response.json()
        code = body["errors"][0]["code"]
    except (ValueError, KeyError, IndexError, TypeError):
        return f"HTTP {response.status_code}"
    return str(code)


class RegistryClient:
    """Client for the registry v2 endpoints used by the rebase pipeline.

    Attributes:
        config: The RebaseConfig the client was created with.
    """

    def __init__(
        self,
        config: RebaseConfig,
        *,
        http_client: httpx.Client | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize RegistryClient.

        Args:
            config: Rebase configuration (timeouts, retry settings).
            http_client: Optional pre-configured httpx client. When omitted a
                client with the configured timeout is created and owned.
            retry_policy: Optional retry policy. Created from config.retry if None.
        """
        self._config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            timeout=config.timeout_seconds,
            follow_redirects=True,
        )
        self._retry_policy = retry_policy or RetryPolicy(config.retry)

    @property
    def config(self) -> RebaseConfig:
        """Return the rebase configuration."""
        return self._config

    def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    @staticmethod
    def repository_url(ref: ImageReference) -> str:
        """Return the v2 base URL of a repository."""
        return f"https://{ref.registry}/v2/{ref.imagepath}"

    def send(
        self,
        method: str,
        url: str,
        *,
        token: str = "",
        headers: dict[str, str] | None = None,
        params: dict[str, str] | list[tuple[str, str]] | None = None,
        content: bytes | None = None,
        auth: httpx.Auth | None = None,
    ) -> httpx.Response:
        """Send one request, retrying idempotent methods on transient failures.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            token: Bearer token; empty means no Authorization header.
            headers: Extra request headers.
            params: Query parameters. httpx replaces any query already in
                ``url`` with these, so pass them only for URLs without one.
            content: Request body.
            auth: Optional httpx auth flow (used for token requests).

        Returns:
            The final httpx.Response. For GET/HEAD a 5xx response is returned
            only after all retry attempts are used.

        Raises:
            RegistryUnavailableError: If the registry cannot be reached.
            ProtocolError: If the request fails for any other reason, such as
                a redirect loop or an undecodable body.
        """
        request_headers = dict(headers or {})
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        if method.upper() not in IDEMPOTENT_METHODS:
            return self._send_once(method, url, request_headers, params, content, auth)

        for attempt in self._retry_policy.attempts():
            try:
                response = self._send_once(method, url, request_headers, params, content, auth)
            except RegistryUnavailableError as e:
                if not attempt.should_retry(e):
                    raise
                attempt.wait()
                continue

            if response.status_code >= 500 and not attempt.is_last_attempt:
                logger.debug(
                    "registry_server_error",
                    method=method,
                    url=url,
                    status_code=response.status_code,
                    attempt=attempt.attempt_number + 1,
                )
                attempt.wait()
                continue
            return response

        raise RegistryUnavailableError(httpx.URL(url).host, "retry attempts exhausted")

    def _send_once(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, str] | list[tuple[str, str]] | None,
        content: bytes | None,
        auth: httpx.Auth | None,
    ) -> httpx.Response:
        logger.debug("registry_request", method=method, url=url)
        try:
            return self._http.request(
                method,
                url,
                headers=headers,
                params=params,
                content=content,
                auth=auth,
            )
        except httpx.TransportError as e:
            raise RegistryUnavailableError(httpx.URL(url).host, str(e) or type(e).__name__) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise ProtocolError(f"{method} {url}", str(e) or type(e).__name__) from e

    @staticmethod
    def _json(response: httpx.Response, reference: str) -> dict[str, Any]:
        try:
            document = response.json()
        except ValueError as e:
            raise ProtocolError(reference, f"response is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise ProtocolError(reference, "expected a JSON object")
        return document

    # -------------------------------------------------------------------------
    # Pull operations
    # -------------------------------------------------------------------------

    def get_manifest(
        self,
        ref: ImageReference,
        reference: str,
        token: str,
    ) -> tuple[dict[str, Any], str | None]:
        """Fetch a manifest (or manifest list) by tag or digest.

        Args:
            ref: Image reference (registry and repository).
            reference: Tag or digest to fetch.
            token: Bearer token with pull scope.

        Returns:
            Tuple of (parsed manifest document, Docker-Content-Digest header or None).

        Raises:
            NotFoundError: If the registry does not answer 2xx.
            ProtocolError: If the body is not a JSON object.
        """
        display = f"{ref.registry}/{ref.imagepath}:{reference}"
        response = self.send(
            "GET",
            f"{self.repository_url(ref)}/manifests/{reference}",
            token=token,
            headers={"Accept": MANIFEST_ACCEPT},
        )
        if not response.is_success:
            raise NotFoundError(display, registry_error_code(response))
        return self._json(response, display), response.headers.get("Docker-Content-Digest")

    def get_blob_json(self, ref: ImageReference, digest: str, token: str) -> dict[str, Any]:
        """Fetch a JSON blob (image config) by digest.

        Raises:
            NotFoundError: If the registry does not answer 2xx.
            ProtocolError: If the body is not a JSON object.
        """
        display = f"{ref.registry}/{ref.imagepath}@{digest}"
        response = self.send("GET", f"{self.repository_url(ref)}/blobs/{digest}", token=token)
        if not response.is_success:
            raise NotFoundError(display, registry_error_code(response))
        return self._json(response, display)

    def head_blob(self, ref: ImageReference, digest: str, token: str) -> int:
        """Check blob presence; returns the HTTP status (200 present, 404 absent)."""
        response = self.send("HEAD", f"{self.repository_url(ref)}/blobs/{digest}", token=token)
        return response.status_code

    # -------------------------------------------------------------------------
    # Push operations
    # -------------------------------------------------------------------------

    def start_upload(self, ref: ImageReference, token: str) -> str:
        """Open a blob upload session.

        Returns:
            Absolute upload location URL.

        Raises:
            UploadError: If the registry does not answer 202.
            ProtocolError: If the Location header is missing or not a URL.
        """
        response = self.send("POST", f"{self.repository_url(ref)}/blobs/uploads/", token=token)
        if response.status_code != 202:
            raise UploadError("start_upload", response.status_code, response.text)

        location = response.headers.get("Location")
        if not location:
            raise ProtocolError(ref.display_name, "upload session has no Location header")
        try:
            return str(response.url.join(location))
        except httpx.InvalidURL as e:
            raise ProtocolError(ref.display_name, f"invalid upload Location {location!r}") from e

    def put_blob(self, location: str, digest: str, content: bytes, token: str) -> None:
        """Complete a monolithic upload at ``location``.

        The digest is appended to the session query; the registry needs the
        state parameters it put into the Location.

        Raises:
            UploadError: If the registry does not answer 201.
        """
        url = str(httpx.URL(location).copy_merge_params({"digest": digest}))
        response = self.send(
            "PUT",
            url,
            token=token,
            headers={"Content-Type": "application/octet-stream"},
            content=content,
        )
        if response.status_code != 201:
            raise UploadError("put_blob", response.status_code, response.text)

    def mount_blob(self, ref: ImageReference, digest: str, donor: str, token: str) -> bool:
        """Mount a blob from a donor repository without transferring bytes.

        Args:
            ref: Target repository.
            digest: Blob digest to mount.
            donor: Registry-relative path of the donor repository.
            token: Bearer token with push on the target and pull on the donor.

        Returns:
            True if the registry answered 201 Created.
        """
        response = self.send(
            "POST",
            f"{self.repository_url(ref)}/blobs/uploads/",
            token=token,
            params={"from": donor, "mount": digest},
            content=b"",
        )
        if response.status_code != 201:
            logger.debug(
                "mount_refused",
                digest=digest,
                donor=donor,
                status_code=response.status_code,
            )
            return False
        return True

    def put_manifest(
        self,
        ref: ImageReference,
        tag: str,
        content: bytes,
        media_type: str,
        token: str,
    ) -> str | None:
        """Publish a manifest under ``tag``.

        Returns:
            The Docker-Content-Digest header, if the registry sent one.

        Raises:
            UploadError: If the registry does not answer 201, carrying the body.
        """
        response = self.send(
            "PUT",
            f"{self.repository_url(ref)}/manifests/{tag}",
            token=token,
            headers={"Content-Type": media_type},
            content=content,
        )
        if response.status_code != 201:
            raise UploadError("put_manifest", response.status_code, response.text)
        return response.headers.get("Docker-Content-Digest")


__all__ = [
    "MANIFEST_ACCEPT",
    "RegistryClient",
    "registry_error_code",
]
