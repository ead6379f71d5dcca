"""Main entry point for the rebase-image CLI.

Rebase an image onto a newer base image directly in the registry. No
layers are pulled or pushed, so the tool runs on any platform. Set
DOCKER_USER and DOCKER_PASS to push the target manifest to the hub.

Example:
    $ rebase-image golang:nanoserver-sac2016 \\
        --target my/golang:nanoserver-1709 \\
        --targetbase microsoft/nanoserver:1709
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

import click
import structlog

from registry_rebase.cli.utils import ExitCode, error_exit, info, success
from registry_rebase.oci.client import RegistryClient
from registry_rebase.rebase.pipeline import RebasePipeline, RebaseRequest
from registry_rebase.schemas.config import ConfigError, PlatformSelector, RebaseConfig
from registry_rebase.telemetry.logging import configure_logging

logger = structlog.get_logger(__name__)


def _get_version() -> str:
    """Get the registry-rebase package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("registry-rebase")
    except PackageNotFoundError:
        return "unknown"


def _load_config(config_path: Path | None, platform: PlatformSelector | None) -> RebaseConfig:
    overrides: dict[str, Any] = {}
    if platform is not None:
        overrides["platform"] = platform
    if config_path is not None:
        return RebaseConfig.from_yaml(config_path, **overrides)
    return RebaseConfig.from_env(**overrides)


@click.command(
    name="rebase-image",
    help=(
        "Rebase an image onto a newer base image directly in the registry. "
        "No image is pulled, so this runs on any platform. Set DOCKER_USER and "
        "DOCKER_PASS to push the target manifest to the hub."
    ),
    epilog=(
        "Example: rebase-image golang:nanoserver-sac2016 "
        "-t my/golang:nanoserver-1709 -b microsoft/nanoserver:1709"
    ),
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="rebase-image",
    message="%(prog)s %(version)s",
)
@click.argument("src_argument", metavar="[SRC]", required=False)
@click.option(
    "--src",
    "src_option",
    help="Source image for the rebase.",
)
@click.option(
    "--target",
    "-t",
    help="The target image name and tag after the rebase.",
)
@click.option(
    "--targetbase",
    "-b",
    help="The target base image that replaces the source base image.",
)
@click.option(
    "--srcbase",
    "-s",
    help="Source base image, if its name differs from the target base image.",
)
@click.option(
    "--platform",
    "platform_value",
    help="Platform picked from manifest lists, as os/architecture[/os.version].",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="YAML configuration file.",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Log output format (stderr).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Show more output.",
)
def rebase_image(
    src_argument: str | None,
    src_option: str | None,
    target: str | None,
    targetbase: str | None,
    srcbase: str | None,
    platform_value: str | None,
    config_path: Path | None,
    log_format: str,
    verbose: bool,
) -> None:
    """Rebase SRC onto TARGETBASE and publish it as TARGET."""
    if src_argument and src_option and src_argument != src_option:
        raise click.UsageError("Give the source image either as argument or with --src, not both.")

    src = src_option or src_argument
    if not src:
        raise click.UsageError("src image missing.")
    if not target:
        raise click.UsageError("target image missing.")
    if not targetbase:
        raise click.UsageError("target base image missing.")

    platform: PlatformSelector | None = None
    if platform_value:
        try:
            platform = PlatformSelector.parse(platform_value)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="'--platform'") from e

    configure_logging(
        log_level="DEBUG" if verbose else "INFO",
        json_output=log_format == "json",
    )

    try:
        config = _load_config(config_path, platform)
    except ConfigError as e:
        error_exit(str(e), exit_code=ExitCode.USAGE_ERROR)

    request = RebaseRequest.from_strings(
        src,
        target=target,
        target_base=targetbase,
        source_base=srcbase,
    )
    logger.debug(
        "options_parsed",
        source=request.source.display_name,
        source_base=request.source_base.display_name if request.source_base else None,
        target=request.target.display_name,
        target_base=request.target_base.display_name,
        platform=str(platform) if platform else None,
    )

    info(
        f"Rebasing {request.source.display_name} onto {request.target_base.display_name} "
        f"as {request.target.display_name}"
    )
    with RegistryClient(config) as client:
        result = RebasePipeline(config, client).run(request)

    if not result.success:
        error_exit(
            str(result.error),
            exit_code=result.exit_code,
            stage=result.failed_stage.value if result.failed_stage else None,
        )

    if result.layers is not None:
        counts = ", ".join(f"{k}={v}" for k, v in result.layers.to_dict().items())
        info(f"Layers: {counts}")
    if result.config_verified is False:
        info(f"Warning: config blob {result.config_digest} could not be verified")
    success(f"Published {result.target.display_name} ({result.manifest_digest})")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the rebase-image CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        rebase_image(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
