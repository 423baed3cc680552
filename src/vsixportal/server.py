"""Download a VS Code server release and unpack it as ``bin/<commit>``."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from vsixportal import platforms
from vsixportal.api_client import CodeAPIManager
from vsixportal.archives import extract_archive
from vsixportal.install_engine import fetch
from vsixportal.marketplace import build_server_download_url
from vsixportal.models import HeaderMetadata, ReleaseReference

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_EXTENSION = ".tar.gz"


def archive_extension(suggested_filename: str | None) -> str:
    """Derive the archive suffix from a content-disposition file name."""
    if not suggested_filename:
        return DEFAULT_ARCHIVE_EXTENSION
    stem, dot, suffix = suggested_filename.rpartition(".")
    if not dot or not stem or not suffix:
        return DEFAULT_ARCHIVE_EXTENSION
    if stem.endswith(".tar"):
        return f".tar.{suffix}"
    return f".{suffix}"


def _archive_destination(base: Path, metadata: HeaderMetadata) -> Path:
    return base.with_name(
        f"{base.name}{archive_extension(metadata.suggested_filename)}"
    )


def download_release_file(
    api_manager: CodeAPIManager,
    release: ReleaseReference,
    output_dir: Path,
) -> Path:
    """Fetch the release archive and return where it was saved."""
    base = output_dir.joinpath(
        f"vscode-{release.prefix}-{release.arch}-{release.commit}"
    )
    url = build_server_download_url(release.commit, release.prefix, release.arch)
    logger.info(f"Downloading vscode server release {release.commit} from {url}")

    archive_path = fetch(
        api_manager.session,
        url,
        base,
        resumable=True,
        decode_content_encoding=False,
        resolve_destination=_archive_destination,
    )
    logger.debug(f"archive file {archive_path}")
    return archive_path


def prepare_release_dir(commit: str, archive_path: Path, output_dir: Path) -> Path:
    """Unpack *archive_path* into a fresh ``<output_dir>/bin/<commit>``."""
    commit_dir = output_dir.joinpath("bin", commit)
    if commit_dir.exists():
        logger.debug(f"Removing stale release directory {commit_dir}")
        shutil.rmtree(commit_dir)
    commit_dir.mkdir(parents=True, exist_ok=True)

    extract_archive(archive_path, commit_dir)
    return commit_dir


def download_server(
    target_platform: str | None = None,
    arch: str | None = None,
    commit: str | None = None,
    output_dir: str | Path = "./",
    api_manager: CodeAPIManager | None = None,
) -> ReleaseReference:
    """Resolve, download and unpack one VS Code server release.

    Every stage depends on the previous one, so the first failure propagates.
    """
    api_manager = api_manager if api_manager is not None else CodeAPIManager()
    resolved_platform, resolved_arch = platforms.normalize(target_platform, arch)
    if not commit:
        commit = api_manager.get_latest_commit(resolved_platform, resolved_arch)
        logger.info(
            f"Latest stable commit for {resolved_platform}-{resolved_arch}: {commit}"
        )

    output_path = Path(output_dir).expanduser()
    output_path.mkdir(parents=True, exist_ok=True)
    release = ReleaseReference(
        commit=commit, platform=resolved_platform, arch=resolved_arch
    )
    archive_path = download_release_file(api_manager, release, output_path)
    commit_dir = prepare_release_dir(commit, archive_path, output_path)
    logger.info(f"VS Code server {commit} is ready in {commit_dir}")
    return ReleaseReference(
        commit=commit,
        platform=resolved_platform,
        arch=resolved_arch,
        archive_path=archive_path,
    )
