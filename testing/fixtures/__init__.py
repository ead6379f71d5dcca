"""Test fixtures for registry-rebase.

Modules:
    registry: In-memory registry and hub token service over httpx.MockTransport
"""

from __future__ import annotations
