"""Turn command line tokens into extension specifiers.

A token is one of:

1. an inline specifier ``<publisher>.<package>[@version][=platform]``,
   optionally ending in ``.vsix``;
2. the path of a VS Code ``extensions.json`` (an array of installed
   extension descriptors, or a single descriptor);
3. the path of a text file holding the output of
   ``code --list-extensions --show-versions``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

# extensions.json written by hand may contain comments and trailing commas
import json5

from vsixportal.exceptions import ParseError
from vsixportal.models import ExtensionSpec

logger: logging.Logger = logging.getLogger(__name__)

NO_PLATFORM_VALUES = ("undefined", "none")


def expand_path(token: str) -> Path:
    return Path(os.path.expandvars(token)).expanduser()


def _split_suffix(value: str, mark: str) -> tuple[str, str | None]:
    head, sep, tail = value.rpartition(mark)
    if not sep:
        return value, None
    return head, tail


def parse_extension_line(line: str) -> ExtensionSpec | None:
    """Parse one inline specifier, returning ``None`` when it is malformed."""
    line = line.strip()
    if line.endswith(".vsix"):
        line = line[: -len(".vsix")]

    prefix, target_platform = _split_suffix(line, "=")
    prefix, version = _split_suffix(prefix, "@")
    publisher, sep, package = prefix.partition(".")
    if not sep or not publisher or not package:
        if line:
            logger.debug(f"Ignoring malformed extension specifier {line!r}")
        return None

    return ExtensionSpec(
        publisher=publisher,
        package=package,
        version=version or None,
        platform=target_platform or None,
    )


def _nested_get(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def parse_extension_dict(data: Any) -> ExtensionSpec | None:
    """Parse one ``extensions.json`` descriptor."""
    extension_id = _nested_get(data, "identifier", "id")
    if not isinstance(extension_id, str):
        logger.debug(f"Ignoring extension descriptor without identifier: {data!r}")
        return None

    base = parse_extension_line(extension_id)
    if base is None:
        return None

    version = data.get("version")
    target_platform = _nested_get(data, "metadata", "targetPlatform")
    if not isinstance(target_platform, str) or target_platform in NO_PLATFORM_VALUES:
        target_platform = None

    return ExtensionSpec(
        publisher=base.publisher,
        package=base.package,
        version=version if isinstance(version, str) and version else None,
        platform=target_platform or None,
    )


def _parse_json_document(content: str, path: Path) -> list[ExtensionSpec]:
    try:
        data = json5.loads(content)
    except ValueError as exc:
        raise ParseError(f"parse json failed from {path}: {exc}") from exc

    if isinstance(data, list):
        descriptors = data
    elif isinstance(data, dict):
        descriptors = [data]
    else:
        logger.warning(f"Ignoring {path}: expected a JSON array or object")
        return []

    return [
        spec
        for spec in (parse_extension_dict(item) for item in descriptors)
        if spec is not None
    ]


def _parse_lines(lines: Iterable[str]) -> list[ExtensionSpec]:
    return [
        spec
        for spec in (parse_extension_line(line) for line in lines if line.strip())
        if spec is not None
    ]


def parse_extension_file(path: Path) -> list[ExtensionSpec]:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"read file {path} failed: {exc}") from exc

    stripped = content.lstrip("\ufeff")
    if stripped.startswith(("[", "{")):
        return _parse_json_document(stripped, path)
    return _parse_lines(stripped.splitlines())


def list_extensions(inputs: Sequence[str]) -> list[ExtensionSpec]:
    """Collect, sort and deduplicate the specifiers named by *inputs*."""
    result: list[ExtensionSpec] = []
    for token in inputs:
        path = expand_path(token)
        if path.is_file():
            logger.debug(f"Reading extension list from {path}")
            result.extend(parse_extension_file(path))
            continue
        spec = parse_extension_line(str(path))
        if spec is not None:
            result.append(spec)

    unique: dict[str, ExtensionSpec] = {}
    for spec in sorted(result, key=lambda item: item.name):
        unique.setdefault(spec.name, spec)
    return list(unique.values())
