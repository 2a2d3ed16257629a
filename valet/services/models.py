"""Normalized service/PHP data shared by every backend."""

from __future__ import annotations

import re
from dataclasses import dataclass

from pydantic import BaseModel

# ── Normalized shapes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ServiceRecord:
    """One service as reported by the service manager, in backend-neutral form."""

    name: str
    running: bool
    status: str
    owner_is_root: bool
    unit_or_file_ref: str
    exit_code: int | None = None
    error_log: str | None = None
    user: str | None = None


@dataclass(frozen=True)
class PhpIdentity:
    """Pieces of a PHP executable path: `<prefix><base_name><version_suffix>`.

    `release` is only set by backends whose paths also carry the installed
    release directory (Homebrew's Cellar layout).
    """

    prefix: str | None = None
    base_name: str | None = None
    version_suffix: str | None = None
    release: str | None = None

    @property
    def matched(self) -> bool:
        return self.base_name is not None

    @property
    def formula(self) -> str:
        """`php`, `php8.2`, `php@8.2`, ... or empty when nothing matched."""
        return (self.base_name or "") + (self.version_suffix or "")

    @property
    def resolved_version(self) -> str:
        return self.release or self.version_suffix or self.base_name or ""


_NON_DIGITS = re.compile(r"\D")


def are_php_versions_equal(version_a: str, version_b: str) -> bool:
    """Compare two PHP version labels by their digits only.

    `8.2`, `82`, `php8.2` and `php@8.2` are all equal; `php8.2` and `php8.20`
    are not.
    """
    return _NON_DIGITS.sub("", version_a) == _NON_DIGITS.sub("", version_b)


# ── Raw listing entries ──────────────────────────────────────────────────────


class SystemdUnit(BaseModel):
    """Entry of `systemctl list-units --output=json`."""

    model_config = {"extra": "ignore"}

    unit: str
    active: str
    load: str = ""
    sub: str = ""
    description: str = ""


class BrewServiceEntry(BaseModel):
    """Entry of `brew services info --all --json`."""

    model_config = {"extra": "ignore"}

    name: str
    running: bool = False
    status: str | None = None
    user: str | None = None
    file: str | None = None
    exit_code: int | None = None
    error_log_path: str | None = None
