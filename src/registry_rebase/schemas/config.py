"""Runtime configuration schemas for registry rebase.

Pydantic v2 models describing where the default hub and its token service
live, which credentials to use, how requests time out and retry, and which
platform to pick out of manifest lists.

Key Components:
    RetryConfig: Exponential backoff settings for idempotent requests
    PlatformSelector: os/architecture filter for manifest-list entries
    RebaseConfig: Top-level configuration (env + optional YAML file)

Example:
    >>> config = RebaseConfig.from_env({"DOCKER_USER": "ci", "DOCKER_PASS": "secret"})
    >>> config.username
    'ci'
    >>> config.hub_registry
    'registry-1.docker.io'
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

DEFAULT_HUB_REGISTRY = "registry-1.docker.io"
"""Registry host of the default hub."""

DEFAULT_AUTH_URL = "https://auth.docker.io/token"
"""Token endpoint of the default hub."""

DEFAULT_AUTH_SERVICE = "registry.docker.io"
"""Service name passed to the default hub token endpoint."""

PLACEHOLDER_USERNAME = "username"
PLACEHOLDER_PASSWORD = "password"

USERNAME_ENV = "DOCKER_USER"
PASSWORD_ENV = "DOCKER_PASS"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be loaded or validated."""


class RetryConfig(BaseModel):
    """Retry policy configuration for idempotent registry requests.

    Only GET and HEAD requests are retried; uploads and publishes never are.

    Examples:
        >>> config = RetryConfig(max_attempts=5)
        >>> config.initial_delay_ms
        500
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of attempts (first try included)",
    )
    initial_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Initial delay between retries in milliseconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=5.0,
        description="Multiplier for exponential backoff",
    )
    max_delay_ms: int = Field(
        default=10000,
        ge=0,
        description="Maximum delay cap in milliseconds",
    )
    jitter: bool = Field(
        default=True,
        description="Add random jitter to delays",
    )


class PlatformSelector(BaseModel):
    """Platform used to pick an entry out of a manifest list.

    Examples:
        >>> PlatformSelector.parse("windows/amd64/10.0.17763")
        PlatformSelector(os='windows', architecture='amd64', os_version='10.0.17763')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    os: str = Field(..., min_length=1, description="Operating system, e.g. windows")
    architecture: str = Field(..., min_length=1, description="CPU architecture, e.g. amd64")
    os_version: str | None = Field(
        default=None,
        description="Optional os.version prefix, e.g. 10.0.17763",
    )

    @classmethod
    def parse(cls, value: str) -> PlatformSelector:
        """Parse ``os/architecture[/os.version]``.

        Raises:
            ValueError: If the value does not have two or three segments.
        """
        parts = value.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(f"Invalid platform '{value}', expected os/architecture[/os.version]")
        return cls(
            os=parts[0],
            architecture=parts[1],
            os_version=parts[2] if len(parts) == 3 else None,
        )

    def matches(self, platform: Mapping[str, Any] | None) -> bool:
        """Check whether a manifest-list ``platform`` object matches this selector."""
        if not platform:
            return False
        if platform.get("os") != self.os or platform.get("architecture") != self.architecture:
            return False
        if self.os_version is None:
            return True
        return str(platform.get("os.version", "")).startswith(self.os_version)

    def __str__(self) -> str:
        value = f"{self.os}/{self.architecture}"
        if self.os_version:
            value += f"/{self.os_version}"
        return value


class RebaseConfig(BaseModel):
    """Top-level configuration for a rebase run.

    Credentials always come from the environment (``DOCKER_USER`` and
    ``DOCKER_PASS``); unset values fall back to non-functional placeholders
    so anonymous pulls from non-hub registries still work.

    Examples:
        >>> config = RebaseConfig(username="ci", password="secret")
        >>> config.password.get_secret_value()
        'secret'
        >>> config.timeout_seconds
        60.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    hub_registry: str = Field(
        default=DEFAULT_HUB_REGISTRY,
        min_length=1,
        description="Registry host that requires bearer tokens",
    )
    auth_url: str = Field(
        default=DEFAULT_AUTH_URL,
        min_length=1,
        description="Token endpoint of the hub",
    )
    auth_service: str = Field(
        default=DEFAULT_AUTH_SERVICE,
        min_length=1,
        description="Service name sent to the token endpoint",
    )
    username: str = Field(default=PLACEHOLDER_USERNAME)
    password: SecretStr = Field(default=SecretStr(PLACEHOLDER_PASSWORD))
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout applied to every registry request",
    )
    max_manifest_list_depth: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Maximum manifest-list indirections followed per fetch",
    )
    platform: PlatformSelector | None = Field(
        default=None,
        description="Platform used to select manifest-list entries (first entry if unset)",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> RebaseConfig:
        """Create configuration with credentials from the environment.

        Args:
            environ: Environment mapping (defaults to ``os.environ``).
            **overrides: Additional field values.

        Returns:
            Validated RebaseConfig.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = dict(overrides)
        data["username"] = env.get(USERNAME_ENV) or PLACEHOLDER_USERNAME
        data["password"] = env.get(PASSWORD_ENV) or PLACEHOLDER_PASSWORD
        return cls.model_validate(data)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> RebaseConfig:
        """Create configuration from a YAML file plus environment credentials.

        The file holds a mapping of RebaseConfig fields. ``username`` and
        ``password`` are not read from the file.

        Raises:
            ConfigError: If the file is missing, unparsable or invalid.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {config_path}")

        data.pop("username", None)
        data.pop("password", None)
        data.update(overrides)
        try:
            return cls.from_env(environ, **data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


__all__ = [
    "ConfigError",
    "DEFAULT_AUTH_SERVICE",
    "DEFAULT_AUTH_URL",
    "DEFAULT_HUB_REGISTRY",
    "PlatformSelector",
    "RebaseConfig",
    "RetryConfig",
]
