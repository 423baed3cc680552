from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path


def get_extension_name(
    publisher: str,
    package: str,
    version: str | None = None,
    platform: str | None = None,
) -> str:
    """Return ``publisher.package[@version][=platform]``."""
    name = f"{publisher}.{package}"
    if version:
        name = f"{name}@{version}"
    if platform:
        name = f"{name}={platform}"
    return name


@dataclass(frozen=True)
class ExtensionSpec:
    publisher: str
    package: str
    version: str | None = None
    platform: str | None = None

    @property
    def extension_id(self) -> str:
        return get_extension_name(self.publisher, self.package)

    @property
    def name(self) -> str:
        return get_extension_name(
            self.publisher, self.package, self.version, self.platform
        )

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ResolvedArtifact:
    publisher: str
    package: str
    version: str
    platform: str | None
    download_url: str
    destination_path: Path


@dataclass(frozen=True)
class HeaderMetadata:
    content_encoding: str | None = None
    suggested_filename: str | None = None


@dataclass(frozen=True)
class ReleaseReference:
    commit: str
    platform: str
    arch: str
    archive_path: Path | None = None

    @property
    def prefix(self) -> str:
        # alpine builds are only published as the standalone cli
        if self.platform == "alpine":
            return f"cli-{self.platform}"
        return f"server-{self.platform}"


class FetchOutcome(enum.Enum):
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"


@dataclass
class DownloadSummary:
    downloaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def record(self, name: str, outcome: FetchOutcome) -> None:
        if outcome is FetchOutcome.SKIPPED:
            self.skipped.append(name)
        else:
            self.downloaded.append(name)
