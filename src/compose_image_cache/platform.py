"""
OCI platform identifiers for the host and for compose `platform:` values.

Host identifiers come from `platform.system()` / `platform.machine()` and are
mapped through closed tables to OCI `os` / `architecture` / `variant` values.
Anything outside those tables is unmappable and reported as such instead of
being passed through.
"""
from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from typing import Optional

from .errors import UnmappablePlatformError

__all__ = [
    "OciPlatform",
    "map_host_os",
    "map_host_arch",
    "map_host_platform",
    "host_platform",
    "parse_platform",
]


# platform.system() -> OCI os
_HOST_TO_OCI_OS = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
    "sunos": "solaris",
    "aix": "aix",
}

# platform.machine() -> (OCI architecture, variant)
_HOST_TO_OCI_ARCH = {
    "x86_64": ("amd64", None),
    "amd64": ("amd64", None),
    "i386": ("386", None),
    "i686": ("386", None),
    "x86": ("386", None),
    "aarch64": ("arm64", None),
    "arm64": ("arm64", None),
    "armv6l": ("arm", "v6"),
    "armv7l": ("arm", "v7"),
    "armv8l": ("arm", "v8"),
    "ppc64le": ("ppc64le", None),
    "s390x": ("s390x", None),
    "riscv64": ("riscv64", None),
    "loongarch64": ("loong64", None),
    "mips64": ("mips64", None),
}

# Aliases accepted in compose `platform:` strings
_OS_ALIASES = {"win32": "windows", "sunos": "solaris"}
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "i386": "386",
    "ia32": "386",
    "x86": "386",
    "mipsel": "mipsle",
    "mips64el": "mips64le",
}
_VARIANT_ALIASES = {"6": "v6", "7": "v7", "8": "v8"}


@dataclass(frozen=True)
class OciPlatform:
    """
    OCI platform triple.

    Attributes:
        os: OCI operating system ("linux", "windows", ...)
        arch: OCI architecture ("amd64", "arm64", "arm", ...)
        variant: Architecture variant ("v7"), if any
    """
    os: str
    arch: str
    variant: Optional[str] = None

    @property
    def descriptor(self) -> str:
        """Underscore-joined form used inside cache keys, e.g. ``linux_arm_v7``."""
        parts = [self.os, self.arch]
        if self.variant:
            parts.append(self.variant)
        return "_".join(parts)

    def __str__(self) -> str:
        parts = [self.os, self.arch]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)


def map_host_os(system: str) -> Optional[str]:
    """Map a `platform.system()` value to an OCI os, or None if unmappable."""
    return _HOST_TO_OCI_OS.get(system.strip().lower())


def map_host_arch(machine: str) -> Optional[tuple[str, Optional[str]]]:
    """Map a `platform.machine()` value to (OCI arch, variant), or None if unmappable."""
    return _HOST_TO_OCI_ARCH.get(machine.strip().lower())


def map_host_platform(system: str, machine: str) -> Optional[OciPlatform]:
    """
    Map host identifiers to an OCI platform.

    Args:
        system: Value of `platform.system()` (e.g. "Linux")
        machine: Value of `platform.machine()` (e.g. "x86_64")

    Returns:
        OciPlatform, or None when either identifier is outside the known set

    Examples:
        >>> map_host_platform("Linux", "x86_64")
        OciPlatform(os='linux', arch='amd64', variant=None)

        >>> map_host_platform("Plan9", "x86_64") is None
        True
    """
    os_name = map_host_os(system)
    arch = map_host_arch(machine)
    if os_name is None or arch is None:
        return None
    return OciPlatform(os=os_name, arch=arch[0], variant=arch[1])


def host_platform(system: Optional[str] = None, machine: Optional[str] = None) -> OciPlatform:
    """
    Return the OCI platform of the running host.

    Raises:
        UnmappablePlatformError: If the host identifiers cannot be mapped
    """
    system = system if system is not None else _platform.system()
    machine = machine if machine is not None else _platform.machine()
    mapped = map_host_platform(system, machine)
    if mapped is None:
        raise UnmappablePlatformError(system, machine)
    return mapped


def parse_platform(value: Optional[str]) -> Optional[OciPlatform]:
    """
    Parse an ``os/arch[/variant]`` string, normalising common aliases.

    Returns None for empty or malformed strings (fewer than two non-empty
    components).
    """
    if not value:
        return None
    parts = value.strip().split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    os_name = parts[0].lower()
    arch = parts[1].lower()
    variant = parts[2].lower() if len(parts) > 2 and parts[2] else None
    return OciPlatform(
        os=_OS_ALIASES.get(os_name, os_name),
        arch=_ARCH_ALIASES.get(arch, arch),
        variant=_VARIANT_ALIASES.get(variant, variant) if variant else None,
    )
