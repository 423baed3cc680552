from __future__ import annotations

import platform
from pathlib import Path

from vsixportal.exceptions import ParseError

# cf. https://github.com/microsoft/vscode/blob/main/cli/src/update_service.rs
EXTENSION_PLATFORMS = {
    "win32-x64": "Windows x64",
    "win32-ia32": "Windows ia32",
    "win32-arm64": "Windows ARM",
    "linux-x64": "Linux x64",
    "linux-arm64": "Linux ARM64",
    "linux-armhf": "Linux ARM32",
    "darwin-x64": "macOS Intel",
    "darwin-arm64": "macOS Apple Silicon",
    "alpine-x64": "Alpine Linux 64 bit",
    "alpine-arm64": "Alpine Linux ARM64",
    "web": "Web",
}

SERVER_PLATFORMS = ("linux", "win32", "darwin", "alpine")
SERVER_ARCHES = ("x64", "arm64", "armhf")

HOST_PLATFORM_MAP = {
    "linux": "linux",
    "windows": "win32",
    "macos": "darwin",
    "darwin": "darwin",
    "alpine": "alpine",
}
HOST_ARCH_MAP = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm": "armhf",
    "armv7l": "armhf",
}


def _is_musl_linux() -> bool:
    libc_name, _ = platform.libc_ver()
    if libc_name.lower() == "musl":
        return True
    return Path("/etc/alpine-release").is_file()


def host_identifiers() -> tuple[str, str]:
    """Return the raw ``(os, arch)`` names reported by the running host."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    if system == "linux" and _is_musl_linux():
        system = "alpine"
    return system, machine


def normalize(
    platform_override: str | None = None,
    arch_override: str | None = None,
) -> tuple[str, str]:
    """Map host identifiers onto the update service's platform/arch names.

    Overrides are returned verbatim; they are validated against
    ``SERVER_PLATFORMS`` and ``SERVER_ARCHES`` by the command line.
    """
    if platform_override and arch_override:
        return platform_override, arch_override

    host_system, host_machine = host_identifiers()
    resolved_platform = platform_override or HOST_PLATFORM_MAP.get(
        host_system, host_system
    )
    resolved_arch = arch_override or HOST_ARCH_MAP.get(host_machine, host_machine)
    return resolved_platform, resolved_arch


def check_platform(target_platform: str | None) -> None:
    """Reject extension platform qualifiers the marketplace does not know."""
    if target_platform is None or target_platform in EXTENSION_PLATFORMS:
        return
    choices = ", ".join(EXTENSION_PLATFORMS)
    raise ParseError(f"invalid platform {target_platform}, choices in ({choices})")
