"""Testing infrastructure for registry-rebase.

Components:
    fixtures: Fake registry and image builders shared by the test suites

Usage:
    from testing.fixtures.registry import FakeRegistry, seed_windows_images
"""

from __future__ import annotations
