"""Root-level test configuration for registry-rebase.

Fixtures here apply to every test tier.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Restore the default structlog configuration after each test.

    CLI tests configure structlog to write to the stderr stream of the click
    test runner, which is closed once the invocation ends.
    """
    yield
    structlog.reset_defaults()
