"""Homebrew backend (macOS).

Homebrew can run the same formula as a user-level LaunchAgent or as a root
LaunchDaemon, so it keeps two listings: `brew services` as the invoking user
and the same command under sudo.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable

from ..command_line import CommandLine
from ..errors import LinkError, PackageInstallError
from ..filesystem import Filesystem
from .base import ServiceBackend, parse_listing_json, unique_by_name, warn_on_failure
from .models import BrewServiceEntry, PhpIdentity, ServiceRecord

logger = logging.getLogger(__name__)

LIST_SERVICES = "brew services info --all --json"

BREW_DISABLE_AUTO_CLEANUP = "HOMEBREW_NO_INSTALL_CLEANUP=1"

LIMITED_PHP_TAP = "shivammathur/php"

# e.g. ../Cellar/php@8.2/8.2.13/bin/php or /opt/homebrew/Cellar/php/8.3.0/bin/php
_PHP_PATH = re.compile(r"\w{3,}/(php)(@?\d\.?\d)?/(\d\.\d)?([_\d\.]*)?/?\w{3,}")


class BrewBackend(ServiceBackend):
    package_manager = "Homebrew"
    supports_user_services = True

    SUPPORTED_PHP_VERSIONS = (
        "php",
        "php@8.5",
        "php@8.4",
        "php@8.3",
        "php@8.2",
        "php@8.1",
        "php@8.0",
        "php@7.4",
        "php@7.3",
        "php@7.2",
        "php@7.1",
    )

    # Homebrew links the generic `php` formula to this release
    LATEST_PHP_VERSION = "php@8.4"

    # Retired from homebrew-core; installed from the shivammathur/php tap
    LIMITED_PHP_VERSIONS = (
        "php@8.0",
        "php@7.4",
        "php@7.3",
        "php@7.2",
        "php@7.1",
    )

    def __init__(self, cli: CommandLine, files: Filesystem, prefix: str = "/opt/homebrew") -> None:
        super().__init__(cli, files)
        self.prefix = prefix.rstrip("/")

    # -- packages --------------------------------------------------------------

    def package_manager_available(self) -> bool:
        return self.cli.run("which brew").strip() != ""

    def installed(self, package: str) -> bool:
        result = self.cli.run(f"brew info {package} --json=v2")
        if "No available formula" in result or "No formulae or casks found" in result:
            return False

        start = result.find("{")
        if start == -1:
            return False
        try:
            details = json.loads(result[start:])
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON from brew info %s: %s", package, e)
            return False
        if not isinstance(details, dict):
            return False

        formulae = details.get("formulae") or []
        if formulae:
            return bool(formulae[0].get("installed"))
        casks = details.get("casks") or []
        if casks:
            return bool(casks[0].get("installed"))
        return False

    def installed_php_packages(self) -> list[str]:
        output = self.cli.run("brew list --formula | grep php")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def install_or_fail(
        self, package: str, options: list[str] | None = None, repos: list[str] | None = None,
    ) -> None:
        """Install through Homebrew. Raises PackageInstallError if brew fails."""
        logger.info("Installing %s...", package)

        if repos:
            self.enable_repos(repos)

        formula = package
        if package in self.limited_php_versions():
            self.enable_repos([LIMITED_PHP_TAP])
            formula = f"{LIMITED_PHP_TAP}/{package}"
            logger.warning("Note: %s is not supported by Homebrew anymore, using %s", package, formula)

        def fail(exit_code: int, error_output: str) -> None:
            logger.error("brew install %s exited %d: %s", formula, exit_code, error_output.strip())
            raise PackageInstallError(package, error_output)

        command = " ".join([BREW_DISABLE_AUTO_CLEANUP, "brew install", formula, *(options or [])])
        self.cli.run(command, on_error=fail)

    def enable_repos(self, repos: Iterable[str]) -> None:
        for tap in repos:
            self.cli.run(f"brew tap {tap}")

    def uninstall_package(self, package: str) -> None:
        report = warn_on_failure(f"Unable to uninstall {package}")
        self.cli.run(f"brew uninstall --force {package}", on_error=report)
        self.cli.run_elevated(f"brew uninstall --force {package}", on_error=report)

    def cleanup_cache(self) -> str:
        return self.cli.run(
            f"{BREW_DISABLE_AUTO_CLEANUP} brew cleanup && brew services cleanup",
            on_error=warn_on_failure("brew cleanup failed"),
        )

    # -- services --------------------------------------------------------------

    def restart_service(self, *services: str) -> None:
        for service in services:
            if self.installed(service):
                logger.info("Restarting %s...", service)
                # A service may be registered both as root and as the user
                self.cli.quietly_elevated(f"brew services stop {service}")
                self.cli.quietly(f"brew services stop {service}")
                self.cli.quietly_elevated(f"brew services start {service}")

    def stop_service(self, *services: str) -> None:
        for service in services:
            if self.installed(service):
                logger.info("Stopping %s...", service)
                self.cli.quietly_elevated(f"brew services stop {service}")
                self.cli.quietly(f"brew services stop {service}")

    def fetch_root_services(self) -> list[ServiceRecord]:
        return _to_records(parse_listing_json(
            self.cli.run_elevated(LIST_SERVICES), BrewServiceEntry, f"sudo {LIST_SERVICES}",
        ))

    def fetch_user_services(self) -> list[ServiceRecord]:
        return _to_records(parse_listing_json(self.cli.run(LIST_SERVICES), BrewServiceEntry, LIST_SERVICES))

    # -- PHP -------------------------------------------------------------------

    def parse_php_path(self, path: str) -> PhpIdentity:
        match = _PHP_PATH.search(path or "")
        if not match:
            return PhpIdentity()
        return PhpIdentity(
            prefix=path[: match.start(1)],
            base_name=match.group(1),
            version_suffix=match.group(2),
            release=match.group(3),
        )

    def linked_php_path(self) -> str:
        link = f"{self.prefix}/bin/php"
        if not self.files.is_link(link):
            return ""
        return self.files.readlink(link)

    def link(self, package: str, force: bool = False) -> str:
        def fail(exit_code: int, error_output: str) -> None:
            raise LinkError(package, error_output)

        command = f"brew link {package} --overwrite" + (" --force" if force else "")
        return self.cli.run(command, on_error=fail)

    def unlink(self, package: str) -> str:
        def fail(exit_code: int, error_output: str) -> None:
            raise LinkError(package, error_output, action="unlink")

        return self.cli.run(f"brew unlink {package}", on_error=fail)


def _to_records(entries: list[BrewServiceEntry]) -> list[ServiceRecord]:
    return unique_by_name(
        ServiceRecord(
            name=entry.name,
            running=entry.running,
            status=entry.status or "",
            owner_is_root=entry.user == "root",
            unit_or_file_ref=entry.file or "",
            exit_code=entry.exit_code,
            error_log=entry.error_log_path,
            user=entry.user,
        )
        for entry in entries
    )
