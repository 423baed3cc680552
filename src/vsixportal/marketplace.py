from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar
from urllib.parse import quote

from vsixportal.internal_config import (
    MARKETPLACE_PAGE_SIZE,
    resolve_marketplace_host,
    resolve_update_host,
)

T = TypeVar("T")

FLAG_INCLUDE_VERSIONS = 0x1
FLAG_INCLUDE_CATEGORY_AND_TAGS = 0x4
FLAG_INCLUDE_VERSION_PROPERTIES = 0x10
FLAG_INCLUDE_INSTALLATION_TARGETS = 0x40

# targetPlatform is only reported with the installation targets flag
DEFAULT_QUERY_FLAGS = (
    FLAG_INCLUDE_VERSIONS
    | FLAG_INCLUDE_CATEGORY_AND_TAGS
    | FLAG_INCLUDE_VERSION_PROPERTIES
    | FLAG_INCLUDE_INSTALLATION_TARGETS
)

FILTER_TYPE_EXTENSION_NAME = 7


def first_match(candidates: Iterable[T], predicate: Callable[[T], bool]) -> T | None:
    """Return the first candidate satisfying *predicate*, in iteration order."""
    for candidate in candidates:
        if predicate(candidate):
            return candidate
    return None


def build_extension_query_body(
    extension_id: str,
    flags: int = DEFAULT_QUERY_FLAGS,
    page_number: int = 1,
    page_size: int = MARKETPLACE_PAGE_SIZE,
) -> dict[str, Any]:
    return {
        "flags": flags,
        "filters": [
            {
                "criteria": [
                    {"filterType": FILTER_TYPE_EXTENSION_NAME, "value": extension_id},
                ],
                "pageNumber": page_number,
                "pageSize": page_size,
            }
        ],
    }


def extract_extension_record(response: Any) -> dict[str, Any] | None:
    """Return ``results[0].extensions[0]`` from a query response, if present."""
    if not isinstance(response, dict):
        return None
    results = response.get("results")
    if not isinstance(results, list) or not results:
        return None
    first_result = results[0]
    if not isinstance(first_result, dict):
        return None
    extensions = first_result.get("extensions")
    if not isinstance(extensions, list) or not extensions:
        return None
    extension = extensions[0]
    return extension if isinstance(extension, dict) else None


def version_entry_matches(
    entry: Any,
    version: str | None,
    target_platform: str | None,
) -> bool:
    """Decide whether one ``versions[]`` entry satisfies the requested pins.

    Without a pinned platform any entry with a matching version is accepted,
    whatever its ``targetPlatform``; the marketplace lists the variants of one
    version next to each other, so the first listed variant wins.
    """
    if not isinstance(entry, dict):
        return False
    entry_version = entry.get("version")
    if not entry_version:
        return False
    if version is not None and entry_version != version:
        return False
    if target_platform is None:
        return True
    return entry.get("targetPlatform") == target_platform


def select_version(
    versions: Iterable[Any],
    version: str | None = None,
    target_platform: str | None = None,
) -> tuple[str, str | None] | None:
    entry = first_match(
        versions,
        lambda item: version_entry_matches(item, version, target_platform),
    )
    if entry is None:
        return None
    return str(entry["version"]), entry.get("targetPlatform") or None


def select_latest_commit(commits: Any) -> str | None:
    if not isinstance(commits, list):
        return None
    return first_match(commits, lambda item: isinstance(item, str) and bool(item))


def build_query_url(host: str | None = None) -> str:
    host = host or resolve_marketplace_host()
    return f"https://{host}/_apis/public/gallery/extensionquery"


def build_download_url(
    publisher: str,
    package: str,
    version: str,
    target_platform: str | None = None,
    host: str | None = None,
) -> str:
    host = host or resolve_marketplace_host()
    url = (
        f"https://{host}/_apis/public/gallery/publishers/{quote(publisher)}"
        f"/vsextensions/{quote(package)}/{quote(version)}/vspackage"
    )
    if target_platform:
        url = f"{url}?targetPlatform={quote(target_platform)}"
    return url


def build_latest_commit_url(
    target_platform: str, arch: str, host: str | None = None
) -> str:
    host = host or resolve_update_host()
    return f"https://{host}/api/commits/stable/{target_platform}-{arch}"


def build_server_download_url(
    commit: str, prefix: str, arch: str, host: str | None = None
) -> str:
    host = host or resolve_update_host()
    return f"https://{host}/commit:{commit}/{prefix}-{arch}/stable"
