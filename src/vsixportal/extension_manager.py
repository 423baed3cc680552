#! /bin/env python3
from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from vsixportal import platforms
from vsixportal.api_client import CodeAPIManager
from vsixportal.exceptions import VsixPortalError
from vsixportal.install_engine import fetch
from vsixportal.marketplace import build_download_url
from vsixportal.models import (
    DownloadSummary,
    ExtensionSpec,
    FetchOutcome,
    ResolvedArtifact,
)

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_DIR = "./vscode-vsix"


class ExtensionDownloadManager(object):
    """Resolve extension specifiers and download their ``.vsix`` packages."""

    api_manager: CodeAPIManager
    download_dir: Path
    cached: bool

    def __init__(
        self,
        download_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
        cached: bool = True,
        api_manager: CodeAPIManager | None = None,
    ) -> None:
        self.api_manager = api_manager if api_manager is not None else CodeAPIManager()
        self.download_dir = Path(os.path.expandvars(str(download_dir))).expanduser()
        self.cached = cached

    def get_filename(self, spec: ExtensionSpec) -> str:
        return f"{spec.name}.vsix"

    def get_destination(self, spec: ExtensionSpec) -> Path:
        return self.download_dir.joinpath(self.get_filename(spec))

    def resolve_artifact(self, spec: ExtensionSpec) -> ResolvedArtifact:
        """Fill in the version (and platform) the marketplace offers for *spec*."""
        if spec.version:
            version, target_platform = spec.version, spec.platform
        else:
            version, target_platform = self.api_manager.resolve(spec)

        return ResolvedArtifact(
            publisher=spec.publisher,
            package=spec.package,
            version=version,
            platform=target_platform,
            download_url=build_download_url(
                spec.publisher, spec.package, version, target_platform
            ),
            destination_path=self.get_destination(spec),
        )

    def download_extension(self, spec: ExtensionSpec) -> FetchOutcome:
        """Download one extension, or skip it when a cached copy exists."""
        platforms.check_platform(spec.platform)
        destination = self.get_destination(spec)
        if self.cached and destination.is_file():
            logger.info(f"{destination} already exists, skip downloading")
            return FetchOutcome.SKIPPED

        artifact = self.resolve_artifact(spec)
        logger.info(f"Downloading {spec.name} from {artifact.download_url}")
        fetch(
            self.api_manager.session,
            artifact.download_url,
            artifact.destination_path,
            resumable=self.cached,
        )
        return FetchOutcome.DOWNLOADED

    def download_all(self, specs: Iterable[ExtensionSpec]) -> DownloadSummary:
        """Download every specifier in turn; failures never stop the loop."""
        summary = DownloadSummary()
        for spec in specs:
            try:
                outcome = self.download_extension(spec)
            except (VsixPortalError, OSError) as exc:
                logger.error(f"Downloading {spec.name} failed: {exc}")
                summary.failed.append((spec.name, str(exc)))
                continue
            summary.record(spec.name, outcome)
        return summary
