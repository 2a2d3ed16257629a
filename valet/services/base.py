"""Package/service backend interface shared by Homebrew and DNF.

Callers (the health engine, the CLI) only talk to `ServiceBackend`. Each
backend turns its package manager's output into booleans and
`ServiceRecord` lists; the matching rules below are common to both.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ..command_line import CommandLine
from ..errors import PhpResolutionError
from ..filesystem import Filesystem
from .cache import ServiceListCache
from .models import PhpIdentity, ServiceRecord, are_php_versions_equal

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=BaseModel)


def parse_listing_json(output: str, model: type[EntryT], source: str = "") -> list[EntryT]:
    """Parse a JSON array printed by a service manager.

    Warnings and banners around the array are skipped, even when they
    contain brackets themselves: each `[` is tried in turn and the first
    one that decodes to a list wins. Unparseable output counts as an empty
    listing; malformed entries are dropped.
    """
    decoder = json.JSONDecoder()
    raw = None
    error: json.JSONDecodeError | None = None

    start = output.find("[")
    while start != -1:
        try:
            candidate, _ = decoder.raw_decode(output, start)
        except json.JSONDecodeError as e:
            error = error or e
        else:
            if isinstance(candidate, list):
                raw = candidate
                break
        start = output.find("[", start + 1)

    if raw is None:
        if error is not None:
            logger.warning("Invalid JSON returned from %s: %s", source or "service listing", error)
        elif output.strip():
            logger.warning("No JSON array in output of %s", source or "service listing")
        return []

    entries: list[EntryT] = []
    for item in raw:
        try:
            entries.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed service entry: %s", e)
    return entries


def warn_on_failure(message: str) -> Callable[[int, str], None]:
    """Failure callback for maintenance commands: log and carry on."""

    def report(exit_code: int, error_output: str) -> None:
        logger.warning("%s (exit %d): %s", message, exit_code, error_output.strip())

    return report


def unique_by_name(records: Iterable[ServiceRecord]) -> list[ServiceRecord]:
    seen: dict[str, ServiceRecord] = {}
    for record in records:
        seen.setdefault(record.name, record)
    return list(seen.values())


def find_running(
    records: Iterable[ServiceRecord],
    name: str,
    exact_match: bool = True,
    owner_is_root: bool | None = None,
) -> bool:
    """True if a running record matches `name` (and the owner, when given).

    `exact_match=False` matches any record whose name contains `name`.
    """
    for record in records:
        if not record.running:
            continue
        if owner_is_root is not None and record.owner_is_root != owner_is_root:
            continue
        if record.name == name if exact_match else name in record.name:
            return True
    return False


def running_php_services(records: Iterable[ServiceRecord], owner_is_root: bool) -> list[str]:
    return [
        record.name
        for record in records
        if record.running and record.owner_is_root == owner_is_root and "php" in record.name
    ]


class ServiceBackend(ABC):
    """Abstract base for a package manager + service manager pair.

    Subclasses provide the raw commands; this class holds the version
    matching and the running-service lookups built on top of them.
    """

    package_manager: str = ""
    supports_user_services: bool = False

    SUPPORTED_PHP_VERSIONS: tuple[str, ...] = ()
    LATEST_PHP_VERSION: str = ""
    LIMITED_PHP_VERSIONS: tuple[str, ...] = ()

    def __init__(self, cli: CommandLine, files: Filesystem) -> None:
        self.cli = cli
        self.files = files
        self._root_services = ServiceListCache(self.fetch_root_services, "root services")
        self._user_services = ServiceListCache(self.fetch_user_services, "user services")

    # -- packages --------------------------------------------------------------

    @abstractmethod
    def package_manager_available(self) -> bool:
        ...

    @abstractmethod
    def installed(self, package: str) -> bool:
        ...

    @abstractmethod
    def installed_php_packages(self) -> list[str]:
        ...

    @abstractmethod
    def install_or_fail(
        self, package: str, options: list[str] | None = None, repos: list[str] | None = None,
    ) -> None:
        ...

    @abstractmethod
    def enable_repos(self, repos: Iterable[str]) -> None:
        ...

    @abstractmethod
    def uninstall_package(self, package: str) -> None:
        ...

    @abstractmethod
    def cleanup_cache(self) -> str:
        ...

    def supported_php_versions(self) -> list[str]:
        return list(self.SUPPORTED_PHP_VERSIONS)

    def limited_php_versions(self) -> list[str]:
        return list(self.LIMITED_PHP_VERSIONS)

    def has_installed_php(self) -> bool:
        supported = self.supported_php_versions()
        return any(package in supported for package in self.installed_php_packages())

    def has_installed_nginx(self) -> bool:
        return self.installed("nginx") or self.installed("nginx-full")

    def ensure_installed(
        self, package: str, options: list[str] | None = None, repos: list[str] | None = None,
    ) -> None:
        """Install `package` unless it is already installed."""
        if not self.installed(package):
            self.install_or_fail(package, options, repos)

    def uninstall_all_php_versions(self) -> str:
        for package in self.supported_php_versions():
            self.uninstall_package(package)
        return "PHP versions removed."

    # -- services --------------------------------------------------------------

    @abstractmethod
    def restart_service(self, *services: str) -> None:
        ...

    @abstractmethod
    def stop_service(self, *services: str) -> None:
        ...

    @abstractmethod
    def fetch_root_services(self) -> list[ServiceRecord]:
        ...

    def fetch_user_services(self) -> list[ServiceRecord]:
        return []

    def root_services(self) -> tuple[ServiceRecord, ...]:
        return self._root_services.get()

    def user_services(self) -> tuple[ServiceRecord, ...]:
        return self._user_services.get()

    def clear_service_cache(self) -> None:
        self._root_services.clear()
        self._user_services.clear()

    def is_service_running(self, name: str, exact_match: bool = True) -> bool:
        if self.is_service_running_as_root(name, exact_match):
            return True
        return self.is_service_running_as_user(name, exact_match)

    def is_service_running_as_root(self, name: str, exact_match: bool = True) -> bool:
        return find_running(self.root_services(), name, exact_match, owner_is_root=True)

    def is_service_running_as_user(self, name: str, exact_match: bool = True) -> bool:
        if not self.supports_user_services:
            return False
        return find_running(self.user_services(), name, exact_match, owner_is_root=False)

    def get_running_services_as_root(self) -> list[str]:
        """Names of the PHP services running as root."""
        return running_php_services(self.root_services(), owner_is_root=True)

    def get_running_services_as_user(self) -> list[str]:
        if not self.supports_user_services:
            return []
        return running_php_services(self.user_services(), owner_is_root=False)

    def get_running_services(self, as_user: bool = False) -> list[str]:
        if as_user:
            return self.get_running_services_as_user()
        return self.get_running_services_as_root()

    def get_all_running_services(self) -> list[str]:
        """PHP services running under either owner, root first, without duplicates."""
        names = self.get_running_services_as_root() + self.get_running_services_as_user()
        return list(dict.fromkeys(names))

    def nginx_service_name(self) -> str:
        return "nginx"

    # -- PHP -------------------------------------------------------------------

    @abstractmethod
    def parse_php_path(self, path: str) -> PhpIdentity:
        ...

    @abstractmethod
    def linked_php_path(self) -> str:
        """Path the backend's `php` binary currently points to, or ''."""
        ...

    @abstractmethod
    def link(self, package: str, force: bool = False) -> str:
        ...

    @abstractmethod
    def unlink(self, package: str) -> str:
        ...

    def has_linked_php(self) -> bool:
        return self.get_parsed_linked_php().matched

    def get_parsed_linked_php(self) -> PhpIdentity:
        return self.parse_php_path(self.linked_php_path())

    def get_linked_php_formula(self) -> str:
        """Name of the linked PHP as the package manager spells it (php, php8.2, php@8.2)."""
        return self.get_parsed_linked_php().formula

    def linked_php(self) -> str:
        """Supported version entry matching the linked PHP.

        Raises PhpResolutionError when the link can't be parsed or matches no
        supported version.
        """
        path = self.linked_php_path()
        identity = self.parse_php_path(path)
        if not identity.matched:
            raise PhpResolutionError(path or "php (not linked)")

        resolved = identity.resolved_version
        for version in self.supported_php_versions():
            if are_php_versions_equal(resolved, version):
                return version
        raise PhpResolutionError(resolved)

    def are_php_versions_equal(self, version_a: str, version_b: str) -> bool:
        return are_php_versions_equal(version_a, version_b)

    def php_fpm_service_name(self, formula: str) -> str:
        return formula

    def restart_linked_php(self) -> None:
        if not self.has_linked_php():
            logger.warning("No linked PHP found, nothing to restart")
            return
        self.restart_service(self.php_fpm_service_name(self.get_linked_php_formula()))
