from __future__ import annotations

import logging
import os
import posixpath
import stat
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from vsixportal.exceptions import ExtractError

logger: logging.Logger = logging.getLogger(__name__)

# tarfile extraction filters exist on 3.12+ and on patched 3.8 to 3.11 releases
_TAR_FILTER_KWARGS = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}


def _strip_component(name: str, count: int) -> str:
    parts = [part for part in PurePosixPath(name).parts if part not in ("", ".")]
    return "/".join(parts[count:])


def _ensure_inside(target_dir: Path, relative_name: str, archive: Path) -> Path:
    target_root = target_dir.resolve()
    member_path = target_root.joinpath(relative_name).resolve()
    try:
        member_path.relative_to(target_root)
    except ValueError as exc:
        raise ExtractError(
            f"Archive member {relative_name} of {archive} escapes {target_dir}"
        ) from exc
    return member_path


def extract_tgz(
    archive_file: Path, output_dir: Path, strip_toplevel: bool = True
) -> None:
    """Stream-extract a gzip compressed tarball into *output_dir*.

    Like ``tar --strip-components=1``, the first path component of every
    member is dropped when *strip_toplevel* is set.
    """
    strip = 1 if strip_toplevel else 0
    try:
        with tarfile.open(archive_file, mode="r|gz") as archive:
            for member in archive:
                name = _strip_component(member.name, strip)
                if not name:
                    continue
                _ensure_inside(output_dir, name, archive_file)
                member.name = name
                if member.islnk():
                    member.linkname = _strip_component(member.linkname, strip)
                archive.extract(member, output_dir, **_TAR_FILTER_KWARGS)
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise ExtractError(f"extract {archive_file} failed: {exc}") from exc


def _common_toplevel(names: list[str]) -> str | None:
    toplevels = {PurePosixPath(name).parts[0] for name in names if name.strip("/")}
    if len(toplevels) != 1:
        return None
    toplevel = toplevels.pop()
    # a lone file at the top is not a wrapping directory
    if toplevel in names:
        return None
    return toplevel


def _extract_zip_symlink(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    name: str,
    output_dir: Path,
    archive_file: Path,
) -> None:
    link_target = archive.read(info).decode("utf-8")
    # the link may only point at something inside the extracted tree
    _ensure_inside(
        output_dir, posixpath.join(posixpath.dirname(name), link_target), archive_file
    )
    target = output_dir.joinpath(name)
    target.unlink(missing_ok=True)
    logger.debug(f"Linking {target} -> {link_target}")
    os.symlink(link_target, target)


def extract_zip(
    archive_file: Path, output_dir: Path, strip_toplevel: bool = True
) -> None:
    """Extract a zip archive into *output_dir*.

    The top-level directory is only stripped when every member shares it.
    """
    try:
        with zipfile.ZipFile(archive_file) as archive:
            infos = archive.infolist()
            toplevel = (
                _common_toplevel([info.filename for info in infos])
                if strip_toplevel
                else None
            )
            for info in infos:
                name = _strip_component(info.filename, 1 if toplevel else 0)
                if not name:
                    continue
                target = _ensure_inside(output_dir, name, archive_file)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                if stat.S_ISLNK(info.external_attr >> 16):
                    _extract_zip_symlink(archive, info, name, output_dir, archive_file)
                    continue
                target.write_bytes(archive.read(info))
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    os.chmod(target, mode)
    except (zipfile.BadZipFile, OSError, UnicodeDecodeError) as exc:
        raise ExtractError(f"extract {archive_file} failed: {exc}") from exc


def extract_archive(archive_file: Path, output_dir: Path) -> None:
    """Dispatch on the archive suffix; unknown kinds are rejected up front."""
    name = archive_file.name
    logger.debug(f"Extracting files from {archive_file} to {output_dir}")
    if name.endswith(".tar.gz"):
        extract_tgz(archive_file, output_dir, strip_toplevel=True)
    elif name.endswith(".zip"):
        extract_zip(archive_file, output_dir, strip_toplevel=True)
    else:
        raise ExtractError(f"unable to extract file {archive_file}")
