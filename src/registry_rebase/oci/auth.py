"""Bearer token acquisition for the default hub.

The default hub (registry-1.docker.io) requires a bearer token per
repository scope; every other registry is assumed to allow anonymous access
and receives the empty token, which means no Authorization header is sent.

Two credential modes are supported on the token request:
    - challenge (default): basic credentials are sent only after the token
      service answers 401, see ChallengeBasicAuth
    - preemptive: basic credentials are sent on the first request, used for
      the multi-scope push token

Example:
    >>> provider = RegistryTokenProvider(config, client)
    >>> token = provider.get_token(
    ...     "registry-1.docker.io",
    ...     [TokenScope("library/mongo", ("pull",))],
    ... )
"""

from __future__ import annotations

from collections.abc import Generator, Sequence
from dataclasses import dataclass

import httpx
import structlog

from registry_rebase.oci.client import RegistryClient
from registry_rebase.oci.errors import AuthError
from registry_rebase.oci.reference import ImageReference
from registry_rebase.schemas.config import RebaseConfig

logger = structlog.get_logger(__name__)

PULL = ("pull",)
PUSH_PULL = ("push", "pull")


@dataclass(frozen=True)
class TokenScope:
    """One ``repository:<path>:<actions>`` scope of a token request.

    Example:
        >>> str(TokenScope("acme/app", ("push", "pull")))
        'repository:acme/app:push,pull'
    """

    repository: str
    actions: tuple[str, ...] = PULL

    def __str__(self) -> str:
        return f"repository:{self.repository}:{','.join(self.actions)}"


def pull_scope(ref: ImageReference) -> list[TokenScope]:
    """Return the scope set needed to read ``ref``."""
    return [TokenScope(ref.imagepath, PULL)]


def push_scopes(
    target: ImageReference,
    source: ImageReference,
    target_base: ImageReference,
) -> list[TokenScope]:
    """Return the scope set for publishing ``target``.

    Mounting layers needs read access on both donor repositories, so the
    push token also carries pull scopes for the source and the target base.
    """
    return [
        TokenScope(target.imagepath, PUSH_PULL),
        TokenScope(source.imagepath, PULL),
        TokenScope(target_base.imagepath, PULL),
    ]


class ChallengeBasicAuth(httpx.Auth):
    """Basic auth that is only sent in answer to a 401 challenge.

    The first request goes out without credentials; if the server replies
    401 the request is repeated once with an ``Authorization: Basic`` header.
    """

    def __init__(self, username: str, password: str) -> None:
        self._basic = httpx.BasicAuth(username, password)

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        response = yield request
        if response.status_code == 401:
            yield from self._basic.auth_flow(request)


class RegistryTokenProvider:
    """Fetch bearer tokens from the hub token service.

    Tokens are never cached: every stage asks for exactly the scope set it
    needs.
    """

    def __init__(self, config: RebaseConfig, client: RegistryClient) -> None:
        self._config = config
        self._client = client

    def _auth(self, preemptive: bool) -> httpx.Auth:
        username = self._config.username
        password = self._config.password.get_secret_value()
        if preemptive:
            return httpx.BasicAuth(username, password)
        return ChallengeBasicAuth(username, password)

    def get_token(
        self,
        registry: str,
        scopes: Sequence[TokenScope],
        *,
        preemptive: bool = False,
    ) -> str:
        """Obtain a bearer token for ``scopes`` on ``registry``.

        Args:
            registry: Registry host the token is for.
            scopes: Repository scopes, all requested in a single call.
            preemptive: Send basic credentials on the first request.

        Returns:
            The bearer token, or ``""`` for registries other than the hub.

        Raises:
            AuthError: If the token service answers non-2xx or the body
                carries no token.
        """
        if registry != self._config.hub_registry:
            logger.debug("token_skipped", registry=registry)
            return ""

        params: list[tuple[str, str]] = [("account", self._config.username)]
        params.extend(("scope", str(scope)) for scope in scopes)
        params.append(("service", self._config.auth_service))

        auth_host = httpx.URL(self._config.auth_url).host
        logger.debug(
            "token_requested",
            registry=registry,
            scopes=[str(scope) for scope in scopes],
            preemptive=preemptive,
        )

        response = self._client.send(
            "GET",
            self._config.auth_url,
            params=params,
            auth=self._auth(preemptive),
        )
        if not response.is_success:
            raise AuthError(auth_host, f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError(auth_host, "token response is not valid JSON") from e

        if not isinstance(body, dict):
            raise AuthError(auth_host, "token response is not a JSON object")

        token = body.get("token") or body.get("access_token")
        if not token or not isinstance(token, str):
            raise AuthError(auth_host, "token response carries no token")

        logger.debug("token_obtained", registry=registry, scope_count=len(scopes))
        return token


__all__ = [
    "ChallengeBasicAuth",
    "RegistryTokenProvider",
    "TokenScope",
    "pull_scope",
    "push_scopes",
]
