"""Unit test fixtures for registry-rebase.

Unit tests:
- Run without network access (the registry is an in-memory fake)
- Exercise the real httpx client through httpx.MockTransport
- Execute quickly (retry delays are zero)
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from registry_rebase.oci.client import RegistryClient
from registry_rebase.schemas.config import RebaseConfig
from testing.fixtures.registry import FakeRegistry, WindowsScenario, seed_windows_images


@pytest.fixture
def rebase_config() -> RebaseConfig:
    """Configuration with test credentials and default hub settings."""
    return RebaseConfig.from_env({"DOCKER_USER": "ci-user", "DOCKER_PASS": "ci-secret"})


@pytest.fixture
def fake_registry() -> FakeRegistry:
    """Empty in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def windows_scenario(fake_registry: FakeRegistry) -> WindowsScenario:
    """Registry seeded with a nanoserver sac2016 image and both base images."""
    return seed_windows_images(fake_registry)


@pytest.fixture
def registry_client(
    fake_registry: FakeRegistry,
    rebase_config: RebaseConfig,
) -> Generator[RegistryClient, None, None]:
    """RegistryClient wired to the fake registry."""
    client = fake_registry.client(rebase_config)
    yield client
    client.close()
