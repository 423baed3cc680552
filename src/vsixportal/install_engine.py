"""Resumable, crash-safe downloads.

A transfer never writes to its destination directly: the body is streamed to
``<destination>.downloading`` and the response headers to
``<destination>.header``. Both stay behind when a transfer fails so that the
next resumable attempt can continue with a range request; they are removed
once the final file has been moved into place.
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import zlib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Callable, Protocol

import requests
from urllib3.exceptions import HTTPError as TransportError

from vsixportal.exceptions import FetchError
from vsixportal.headers import inspect_headers, write_header_file
from vsixportal.internal_config import (
    DEFAULT_USER_AGENT,
    DOWNLOAD_CHUNK_SIZE,
    HTTP_STREAM_CONNECT_TIMEOUT_SECONDS,
    HTTP_STREAM_READ_TIMEOUT_SECONDS,
)
from vsixportal.models import HeaderMetadata

logger: logging.Logger = logging.getLogger(__name__)

BODY_SUFFIX = ".downloading"
HEADER_SUFFIX = ".header"
HTTP_PARTIAL_CONTENT = 206
HTTP_RANGE_NOT_SATISFIABLE = 416


class DownloadSession(Protocol):
    def get(
        self,
        url: str,
        *,
        stream: bool,
        headers: dict[str, str],
        timeout: tuple[int, int],
    ) -> requests.Response: ...


ResolveDestination = Callable[[Path, HeaderMetadata], Path]


def temporary_paths(destination: Path) -> tuple[Path, Path]:
    """Return the ``(body, header)`` scratch files used for *destination*."""
    return (
        destination.with_name(f"{destination.name}{BODY_SUFFIX}"),
        destination.with_name(f"{destination.name}{HEADER_SUFFIX}"),
    )


def _request(
    session: DownloadSession,
    url: str,
    headers: dict[str, str],
    timeout: tuple[int, int],
) -> requests.Response:
    try:
        return session.get(url, stream=True, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise FetchError(f"GET {url} failed: {exc}", url=url) from exc


def _write_body(response: requests.Response, body_path: Path, append: bool) -> None:
    # raw bytes: a resumed range must continue the stream exactly as sent
    with open(body_path, "ab" if append else "wb") as output:
        for chunk in response.raw.stream(DOWNLOAD_CHUNK_SIZE, decode_content=False):
            if chunk:
                output.write(chunk)
        output.flush()
        os.fsync(output.fileno())


def _receive(
    session: DownloadSession,
    url: str,
    body_path: Path,
    header_path: Path,
    resumable: bool,
    timeout: tuple[int, int],
    accept_encoding: str = "gzip",
) -> None:
    headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept-Encoding": accept_encoding}
    offset = body_path.stat().st_size if resumable and body_path.is_file() else 0
    if offset:
        headers["Range"] = f"bytes={offset}-"
        logger.info(f"Resuming {body_path.name} at byte {offset}")

    response = _request(session, url, headers, timeout)
    if offset and response.status_code == HTTP_RANGE_NOT_SATISFIABLE:
        logger.info(f"Server refused to resume {body_path.name}, restarting")
        response.close()
        body_path.unlink(missing_ok=True)
        headers = {key: value for key, value in headers.items() if key != "Range"}
        offset = 0
        response = _request(session, url, headers, timeout)

    try:
        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"GET {url} failed with HTTP {response.status_code} {response.reason}",
                url=url,
                status_code=response.status_code,
            )
        write_header_file(
            header_path,
            response.status_code,
            response.reason or "",
            response.headers,
        )
        append = bool(offset) and response.status_code == HTTP_PARTIAL_CONTENT
        _write_body(response, body_path, append)
    except (requests.RequestException, TransportError, OSError) as exc:
        raise FetchError(
            f"GET {url} interrupted: {exc}",
            url=url,
            status_code=response.status_code,
        ) from exc
    finally:
        response.close()


def _decompress_gzip(body_path: Path, target: Path) -> None:
    with NamedTemporaryFile(
        delete=False, dir=target.parent, prefix=f".{target.name}."
    ) as tmp_file:
        tmp_target = Path(tmp_file.name)

    try:
        with gzip.open(body_path, "rb") as source, open(tmp_target, "wb") as output:
            shutil.copyfileobj(source, output, DOWNLOAD_CHUNK_SIZE)
        tmp_target.replace(target)
    finally:
        if tmp_target.exists() and tmp_target != target:
            tmp_target.unlink(missing_ok=True)


def fetch(
    session: DownloadSession,
    url: str,
    destination: Path,
    *,
    resumable: bool,
    decode_content_encoding: bool = True,
    resolve_destination: ResolveDestination | None = None,
    timeout: tuple[int, int] = (
        HTTP_STREAM_CONNECT_TIMEOUT_SECONDS,
        HTTP_STREAM_READ_TIMEOUT_SECONDS,
    ),
) -> Path:
    """Download *url* and return the path of the completed file.

    ``resolve_destination`` may pick the final path from the response
    metadata; by default the file lands at *destination*.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    body_path, header_path = temporary_paths(destination)
    logger.debug(f"Downloading {url}\n  -> {body_path}")

    # undecoded downloads must arrive exactly as published
    accept_encoding = "gzip" if decode_content_encoding else "identity"
    _receive(
        session, url, body_path, header_path, resumable, timeout, accept_encoding
    )

    metadata = inspect_headers(header_path)
    target = (
        resolve_destination(destination, metadata)
        if resolve_destination is not None
        else destination
    )
    encoding = metadata.content_encoding or ""
    if decode_content_encoding and "gzip" in encoding:
        logger.debug(f"Decoding gzip content of {body_path.name}")
        try:
            _decompress_gzip(body_path, target)
        except (OSError, EOFError, zlib.error) as exc:
            raise FetchError(
                f"decoding gzip content from {url} failed: {exc}", url=url
            ) from exc
    else:
        body_path.replace(target)

    body_path.unlink(missing_ok=True)
    header_path.unlink(missing_ok=True)
    logger.debug(f"Saved {target}")
    return target
