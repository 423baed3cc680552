from __future__ import annotations

import os
import platform
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version


def _get_package_version(name: str) -> str:
    """Return the installed version of *name*, or ``"0"`` if not found."""
    try:
        return _pkg_version(name)
    except PackageNotFoundError:
        return "0"


VSIXPORTAL_VERSION = _get_package_version("vsixportal")

# The gallery rejects some unfamiliar agents with non-functional download URLs.
DEFAULT_USER_AGENT = (
    f"Offline VSIX/{VSIXPORTAL_VERSION}"
    f" ({platform.system()}; {platform.machine()}; vsixportal)"
)

DEFAULT_MARKETPLACE_HOST = "marketplace.visualstudio.com"
DEFAULT_UPDATE_HOST = "update.code.visualstudio.com"

MARKETPLACE_API_VERSION = "3.0-preview.1"
MARKETPLACE_PAGE_SIZE = 10

HTTP_REQUEST_TIMEOUT_SECONDS = 30
HTTP_STREAM_CONNECT_TIMEOUT_SECONDS = 10
HTTP_STREAM_READ_TIMEOUT_SECONDS = 120

HTTP_RETRY_TOTAL = 3
HTTP_RETRY_BACKOFF_FACTOR = 1
HTTP_RETRY_STATUS_FORCELIST = [429, 500, 502, 503, 504]
HTTP_RETRY_ALLOWED_METHODS = ["HEAD", "GET", "OPTIONS", "POST"]

DOWNLOAD_CHUNK_SIZE = 1024 * 64


def resolve_marketplace_host() -> str:
    """Return the gallery host, honouring ``VSIXPORTAL_MARKETPLACE_HOST``."""
    explicit_host = os.environ.get("VSIXPORTAL_MARKETPLACE_HOST", "").strip()
    return explicit_host or DEFAULT_MARKETPLACE_HOST


def resolve_update_host() -> str:
    """Return the VS Code update host, honouring ``VSIXPORTAL_UPDATE_HOST``."""
    explicit_host = os.environ.get("VSIXPORTAL_UPDATE_HOST", "").strip()
    return explicit_host or DEFAULT_UPDATE_HOST
