"""CLI utility functions and error handling.

This module provides shared utilities for the rebase-image CLI, including:
- Exit code constants
- Error formatting on stderr
- Output helpers for consistent stderr/stdout usage

Example:
    from registry_rebase.cli.utils import error_exit, ExitCode

    if not result.success:
        error_exit(str(result.error), exit_code=result.exit_code)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes of the rebase-image command.

    Codes 3 and up match the ``exit_code`` of the corresponding RebaseError.
    """

    SUCCESS = 0
    """Image rebased and published."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing images, invalid config file)."""

    AUTH_ERROR = 3
    """Bearer token could not be obtained."""

    NOT_FOUND = 4
    """Manifest, config or platform not found."""

    PRECONDITION_FAILED = 5
    """Source image not built from the source base."""

    UPLOAD_ERROR = 6
    """Config upload, blob check or manifest publish failed."""

    MOUNT_ERROR = 7
    """A layer could not be mounted from any donor repository."""

    PROTOCOL_ERROR = 8
    """Registry response could not be understood."""

    REGISTRY_UNAVAILABLE = 9
    """Registry not reachable after retries."""


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
        **context: Optional context key-value pairs to include.

    Example:
        error("Upload failed", stage="PUBLISH")
        # Output: Error: Upload failed (stage=PUBLISH)
    """
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: int = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Args:
        message: Error message to display.
        exit_code: Exit code to use (default: GENERAL_ERROR).
        **context: Optional context key-value pairs to include.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(int(exit_code))


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Used for progress updates that should not be captured by stdout
    redirection.
    """
    click.echo(message, err=True)


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "info",
    "success",
]
