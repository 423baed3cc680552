#! /bin/env python3
from __future__ import annotations

import enum
import logging

import typer

from vsixportal.exceptions import VsixPortalError
from vsixportal.extension_manager import DEFAULT_DOWNLOAD_DIR, ExtensionDownloadManager
from vsixportal.internal_config import DEFAULT_USER_AGENT, VSIXPORTAL_VERSION
from vsixportal.models import DownloadSummary
from vsixportal.server import download_server
from vsixportal.specifiers import list_extensions

LOG_FORMAT = "%(relativeCreated)d [%(levelname)s] %(message)s"

HELP_EXTENSIONS = (
    "Extension to download, repeatable. Each value is one of: "
    "'<publisher>.<package>[@version][=platform]'; "
    "a VS Code extensions.json; "
    "the output of `code --list-extensions --show-versions`."
)
EPILOG_EXTENSION = (
    "Example: to download every extension installed for a VS Code build, run "
    "`vsixportal extension --extensions ~/.vscode/extensions/extensions.json`."
)

app: typer.Typer = typer.Typer(
    help="Download VS Code extensions and the VS Code server for offline use.",
    no_args_is_help=True,
)
logger: logging.Logger = logging.getLogger(__name__)


class ServerPlatform(str, enum.Enum):
    linux = "linux"
    win32 = "win32"
    darwin = "darwin"
    alpine = "alpine"


class ServerArch(str, enum.Enum):
    x64 = "x64"
    arm64 = "arm64"
    armhf = "armhf"


def setup_logging(log_level: str = "info") -> None:
    """Configure process-wide logging once, from an explicit level name."""
    _log_level = getattr(logging, log_level.upper(), None)
    if not isinstance(_log_level, int):
        raise ValueError(f"Invalid log level: {log_level!r}")
    logging.basicConfig(level=_log_level, format=LOG_FORMAT)


def report_summary(summary: DownloadSummary) -> None:
    for name in summary.downloaded:
        typer.echo(f"downloaded: {name}")
    for name in summary.skipped:
        typer.echo(f"skipped (already cached): {name}")
    for name, error in summary.failed:
        typer.echo(f"failed: {name}: {error}", err=True)
    typer.echo(
        f"{len(summary.downloaded)} downloaded, {len(summary.skipped)} skipped, "
        f"{len(summary.failed)} failed"
    )


def _print_version(value: bool) -> None:
    if not value:
        return
    typer.echo(f"vsixportal {VSIXPORTAL_VERSION}")
    typer.echo(f"User-Agent: {DEFAULT_USER_AGENT}")
    raise typer.Exit()


@app.callback()
def configure(
    log_level: str = typer.Option("info", help="Logging level (debug, info, ...)."),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug messages."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show the version and User-Agent, then exit.",
    ),
) -> None:
    try:
        setup_logging("debug" if verbose else log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


@app.command(epilog=EPILOG_EXTENSION)
def extension(
    extensions: list[str] = typer.Option(..., "--extensions", help=HELP_EXTENSIONS),
    download_dir: str = typer.Option(
        DEFAULT_DOWNLOAD_DIR, help="Directory receiving the .vsix files."
    ),
    cached: bool = typer.Option(
        True, "--cached/--no-cached", help="Skip files that were already downloaded."
    ),
) -> None:
    """Download VS Code extensions as .vsix packages."""
    try:
        specs = list_extensions(extensions)
    except VsixPortalError as exc:
        logger.error(f"{exc}")
        raise typer.Exit(code=1) from exc

    logger.info(f"Downloading {len(specs)} extension(s) to {download_dir}")
    manager = ExtensionDownloadManager(download_dir=download_dir, cached=cached)
    summary = manager.download_all(specs)
    report_summary(summary)
    if not summary.ok:
        raise typer.Exit(code=1)


@app.command()
def server(
    platform: ServerPlatform | None = typer.Option(None, help="Target platform."),
    arch: ServerArch | None = typer.Option(None, help="Target architecture."),
    commit: str | None = typer.Option(None, help="The commit id, latest if unset."),
    output_dir: str = typer.Option("./", help="The output dir."),
) -> None:
    """Download and unpack the VS Code server."""
    try:
        release = download_server(
            target_platform=platform.value if platform else None,
            arch=arch.value if arch else None,
            commit=commit,
            output_dir=output_dir,
        )
    except (VsixPortalError, OSError) as exc:
        logger.error(f"Downloading vscode server failed: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"vscode server {release.commit} ({release.platform}-{release.arch})")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
