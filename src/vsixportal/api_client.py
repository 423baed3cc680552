#! /bin/env python3
from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter, Retry

from vsixportal.exceptions import ResolutionError
from vsixportal.internal_config import (
    DEFAULT_USER_AGENT,
    HTTP_REQUEST_TIMEOUT_SECONDS,
    HTTP_RETRY_ALLOWED_METHODS,
    HTTP_RETRY_BACKOFF_FACTOR,
    HTTP_RETRY_STATUS_FORCELIST,
    HTTP_RETRY_TOTAL,
    MARKETPLACE_API_VERSION,
)
from vsixportal.marketplace import (
    DEFAULT_QUERY_FLAGS,
    build_extension_query_body,
    build_latest_commit_url,
    build_query_url,
    extract_extension_record,
    select_latest_commit,
    select_version,
)
from vsixportal.models import ExtensionSpec

logger: logging.Logger = logging.getLogger(__name__)


def create_session() -> requests.Session:
    """Return a session retrying throttled and failed requests."""
    retry_strategy = Retry(
        total=HTTP_RETRY_TOTAL,
        backoff_factor=HTTP_RETRY_BACKOFF_FACTOR,
        status_forcelist=HTTP_RETRY_STATUS_FORCELIST,
        allowed_methods=HTTP_RETRY_ALLOWED_METHODS,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = DEFAULT_USER_AGENT
    return session


class CodeAPIManager(object):
    """Query the VSCode Marketplace and update service for download metadata."""

    session: requests.Session

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session if session is not None else create_session()

    def query_extension(
        self,
        extension_id: str,
        flags: int = DEFAULT_QUERY_FLAGS,
        api_version: str = MARKETPLACE_API_VERSION,
    ) -> dict[str, Any]:
        """Return the marketplace record of *extension_id* (``publisher.package``)."""
        headers = {
            "Content-Type": "application/json",
            "Accept": f"application/json;api-version={api_version}",
            "User-Agent": DEFAULT_USER_AGENT,
        }
        body = build_extension_query_body(extension_id, flags=flags)

        logger.debug(f"Querying marketplace for {extension_id}")
        try:
            response = self.session.post(
                build_query_url(),
                json=body,
                headers=headers,
                timeout=HTTP_REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ResolutionError(
                f"query extension {extension_id} info failed: {exc}"
            ) from exc

        extension = extract_extension_record(data)
        if extension is None:
            raise ResolutionError(
                f"no data found in query response for {extension_id}"
            )
        return extension

    def resolve(self, spec: ExtensionSpec) -> tuple[str, str | None]:
        """Pick the ``(version, platform)`` the marketplace offers for *spec*."""
        logger.info(f"Obtaining version metadata for {spec.name}")
        extension = self.query_extension(spec.extension_id)
        versions = extension.get("versions")
        selected = select_version(
            versions if isinstance(versions, list) else [],
            version=spec.version,
            target_platform=spec.platform,
        )
        if selected is None:
            raise ResolutionError(f"query extension {spec.name} for version failed")

        version, target_platform = selected
        logger.debug(
            f"- {spec.name} resolved to {version} ({target_platform or 'any'})"
        )
        return version, target_platform

    def get_latest_commit(self, target_platform: str, arch: str) -> str:
        """Return the commit id of the latest stable VS Code release."""
        url = build_latest_commit_url(target_platform, arch)
        logger.debug(f"Querying latest commit from {url}")
        try:
            response = self.session.get(url, timeout=HTTP_REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
            commits = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ResolutionError(
                f"query vscode server commit id failed, url {url}: {exc}"
            ) from exc

        commit = select_latest_commit(commits)
        if commit is None:
            raise ResolutionError(f"query vscode server commit id failed, url {url}")
        return commit
