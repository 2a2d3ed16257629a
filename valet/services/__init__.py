"""Package/service backends: Homebrew (macOS) and DNF + systemd (Linux)."""

from __future__ import annotations

import platform

from ..command_line import CommandLine
from ..filesystem import Filesystem
from .base import ServiceBackend
from .brew import BrewBackend
from .cache import ServiceListCache
from .dnf import DnfBackend
from .models import PhpIdentity, ServiceRecord, are_php_versions_equal

__all__ = [
    "BrewBackend",
    "DnfBackend",
    "PhpIdentity",
    "ServiceBackend",
    "ServiceListCache",
    "ServiceRecord",
    "are_php_versions_equal",
    "create_backend",
]


def create_backend(
    cli: CommandLine,
    files: Filesystem,
    backend: str = "auto",
    brew_prefix: str = "/opt/homebrew",
    php_bin_dir: str = "/usr/bin",
) -> ServiceBackend:
    """Pick the backend by name, or by platform when `backend` is "auto"."""
    name = backend.lower()
    if name == "auto":
        name = "brew" if platform.system() == "Darwin" else "dnf"

    if name == "brew":
        return BrewBackend(cli, files, prefix=brew_prefix)
    if name == "dnf":
        return DnfBackend(cli, files, bin_dir=php_bin_dir)
    raise ValueError(f"Unknown service backend: {backend}")
