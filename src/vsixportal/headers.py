"""Read metadata back from the raw response headers saved next to a download."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from vsixportal.models import HeaderMetadata

logger: logging.Logger = logging.getLogger(__name__)

# lower value wins; RFC 5987 names carry the charset and survive non-ascii
_FILENAME_PRIORITY = {"filename*": 1, "filename": 4}


def _header_lines(header_file: Path) -> list[str]:
    try:
        return header_file.read_text(encoding="latin-1").splitlines()
    except OSError:
        return []


def _header_value(lines: Iterable[str], name: str) -> str | None:
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep or key.strip().lower() != name:
            continue
        return value.strip()
    return None


def _content_encoding(lines: Iterable[str]) -> str | None:
    value = _header_value(lines, "content-encoding")
    return value.lower() if value else None


def parse_content_encoding(header_file: Path) -> str | None:
    """Return the lower-cased ``Content-Encoding`` value, if any."""
    return _content_encoding(_header_lines(header_file))


def filename_from_content_disposition(value: str | None) -> str | None:
    if not value:
        return None

    names: list[tuple[int, str]] = []
    for part in value.split(";"):
        key, sep, param = part.partition("=")
        if not sep:
            continue
        priority = _FILENAME_PRIORITY.get(key.strip())
        if priority is not None:
            names.append((priority, param.strip()))
    if not names:
        return None

    names.sort(key=lambda item: item[0])
    name = names[0][1]
    # filename*=UTF-8''vscode-server.tar.gz
    if "''" in name:
        name = name.split("''", 1)[1]
    return name.strip('"') or None


def parse_content_disposition(header_file: Path) -> str | None:
    """Return the file name suggested by ``Content-Disposition``, if any."""
    return filename_from_content_disposition(
        _header_value(_header_lines(header_file), "content-disposition")
    )


def inspect_headers(header_file: Path) -> HeaderMetadata:
    lines = _header_lines(header_file)
    metadata = HeaderMetadata(
        content_encoding=_content_encoding(lines),
        suggested_filename=filename_from_content_disposition(
            _header_value(lines, "content-disposition")
        ),
    )
    logger.debug(f"Response metadata from {header_file}: {metadata}")
    return metadata


def write_header_file(
    header_file: Path,
    status_code: int,
    reason: str,
    headers: Mapping[str, str],
) -> None:
    """Persist a response's status line and headers as plain text."""
    lines = [f"HTTP/1.1 {status_code} {reason}".rstrip()]
    lines.extend(f"{key}: {value}" for key, value in headers.items())
    header_file.write_text("\r\n".join(lines) + "\r\n", encoding="latin-1")
