"""Unit tests for the CLI utility functions."""

from __future__ import annotations

from enum import IntEnum

import pytest

from registry_rebase.cli.utils import ExitCode, error, error_exit, info, success
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


class TestExitCodeEnum:
    """Tests for the ExitCode enum."""

    def test_exit_code_is_int_enum(self) -> None:
        """Test ExitCode is an IntEnum for proper exit code usage."""
        assert issubclass(ExitCode, IntEnum)

    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (RebaseError("boom"), ExitCode.GENERAL_ERROR),
            (AuthError("auth.docker.io", "HTTP 401"), ExitCode.AUTH_ERROR),
            (NotFoundError("acme/app:1", "MANIFEST_UNKNOWN"), ExitCode.NOT_FOUND),
            (PreconditionError("not based on base"), ExitCode.PRECONDITION_FAILED),
            (UploadError("put_blob", 400), ExitCode.UPLOAD_ERROR),
            (MountError("sha256:abc", "hub/acme/app", ["a", "b"]), ExitCode.MOUNT_ERROR),
            (ProtocolError("acme/app:1", "not JSON"), ExitCode.PROTOCOL_ERROR),
            (RegistryUnavailableError("hub", "timeout"), ExitCode.REGISTRY_UNAVAILABLE),
        ],
    )
    def test_error_codes_match_exit_codes(self, exc: RebaseError, code: ExitCode) -> None:
        """Test every RebaseError exit code has an ExitCode member."""
        assert exc.exit_code == code


class TestOutputHelpers:
    """Tests for error(), error_exit(), info() and success()."""

    def test_error_with_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test error() writes to stderr and skips None context values."""
        error("Upload failed", stage="PUBLISH", digest=None)

        captured = capsys.readouterr()
        assert captured.err == "Error: Upload failed (stage=PUBLISH)\n"
        assert captured.out == ""

    def test_error_without_usable_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test error() prints no parentheses when every context value is None."""
        error("Upload failed", stage=None, digest=None)

        assert capsys.readouterr().err == "Error: Upload failed\n"

    def test_error_exit_uses_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test error_exit() prints and exits with the given code."""
        with pytest.raises(SystemExit) as exc_info:
            error_exit("Cannot mount", exit_code=ExitCode.MOUNT_ERROR)

        assert exc_info.value.code == 7
        assert "Error: Cannot mount" in capsys.readouterr().err

    def test_success_goes_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test success() writes to stdout."""
        success("Published acme/app:2")

        assert capsys.readouterr().out == "Published acme/app:2\n"

    def test_info_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test info() writes to stderr so stdout stays clean."""
        info("Rebasing")

        captured = capsys.readouterr()
        assert captured.err == "Rebasing\n"
        assert captured.out == ""
