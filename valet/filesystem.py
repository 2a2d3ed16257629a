"""Read-only filesystem queries, kept behind an object so tests can fake them."""

from __future__ import annotations

import os
from pathlib import Path


class Filesystem:
    def exists(self, path: str | Path) -> bool:
        return os.path.exists(path)

    def is_dir(self, path: str | Path) -> bool:
        return os.path.isdir(path)

    def is_link(self, path: str | Path) -> bool:
        return os.path.islink(path)

    def readlink(self, path: str | Path) -> str:
        return os.readlink(path)

    def realpath(self, path: str | Path) -> str:
        return os.path.realpath(path)
