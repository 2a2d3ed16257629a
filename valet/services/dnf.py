"""DNF + systemd backend (Fedora and friends).

systemd runs every Valet service as root, so there is no per-user service
listing here: "running as the current user" is always False.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import PurePosixPath

from ..command_line import CommandLine
from ..errors import LinkError, PackageInstallError
from ..filesystem import Filesystem
from .base import ServiceBackend, parse_listing_json, unique_by_name, warn_on_failure
from .models import PhpIdentity, ServiceRecord, SystemdUnit, are_php_versions_equal

logger = logging.getLogger(__name__)

LIST_UNITS = "systemctl list-units --type=service --all --no-pager --output=json"

REMI_RELEASE_URL = "https://rpms.remirepo.net/fedora/remi-release-{release}.rpm"
DEFAULT_FEDORA_RELEASE = "41"

_ARCH_SUFFIXES = {"x86_64", "aarch64", "i686", "noarch", "ppc64le", "s390x"}

_PHP_PATH = re.compile(r"^(?P<prefix>.*/)(?P<base>php)(?P<version>@?\d+(?:\.\d+)?)?$")


def strip_arch(package: str) -> str:
    """`php-cli.x86_64` -> `php-cli`; `php8.2` is left alone."""
    name, _, arch = package.rpartition(".")
    return name if name and arch in _ARCH_SUFFIXES else package


class DnfBackend(ServiceBackend):
    package_manager = "DNF"
    supports_user_services = False

    SUPPORTED_PHP_VERSIONS = (
        "php",
        "php8.5",
        "php8.4",
        "php8.3",
        "php8.2",
        "php8.1",
        "php8.0",
        "php7.4",
        "php7.3",
        "php7.2",
        "php7.1",
    )

    LATEST_PHP_VERSION = "php8.4"

    # No longer shipped by Fedora; installed from the Remi repository
    LIMITED_PHP_VERSIONS = (
        "php8.0",
        "php7.4",
        "php7.3",
        "php7.2",
        "php7.1",
    )

    def __init__(self, cli: CommandLine, files: Filesystem, bin_dir: str = "/usr/bin") -> None:
        super().__init__(cli, files)
        self.bin_dir = bin_dir.rstrip("/") or "/"

    # -- packages --------------------------------------------------------------

    def package_manager_available(self) -> bool:
        return self.cli.run("which dnf").strip() != ""

    def installed(self, package: str) -> bool:
        result = self.cli.run(f"dnf list installed {package} 2>/dev/null")
        return bool(result.strip()) and "No matching Packages" not in result

    def installed_php_packages(self) -> list[str]:
        output = self.cli.run("dnf list installed 2>/dev/null | grep -i '^php' | awk '{print $1}'")
        return [strip_arch(line.strip()) for line in output.splitlines() if line.strip()]

    def install_or_fail(
        self, package: str, options: list[str] | None = None, repos: list[str] | None = None,
    ) -> None:
        """Install through DNF. Raises PackageInstallError if DNF fails."""
        logger.info("Installing %s...", package)

        if repos:
            self.enable_repos(repos)

        if package in self.limited_php_versions():
            self.enable_remi_repo()
            logger.warning("Note: installing %s from the Remi repository", package)

        def fail(exit_code: int, error_output: str) -> None:
            logger.error("dnf install %s exited %d: %s", package, exit_code, error_output.strip())
            raise PackageInstallError(package, error_output)

        command = " ".join(["dnf install -y", package, *(options or [])])
        self.cli.run_elevated(command, on_error=fail)

    def enable_repos(self, repos: Iterable[str]) -> None:
        for repo in repos:
            self.cli.run_elevated(f"dnf config-manager --set-enabled {repo}")

    def enable_remi_repo(self) -> None:
        if not self.installed("dnf-utils"):
            self.install_or_fail("dnf-utils")

        if not self.installed("remi-release"):
            release = self.cli.run("rpm -E %fedora").strip() or DEFAULT_FEDORA_RELEASE
            self.cli.run_elevated(f"dnf install -y {REMI_RELEASE_URL.format(release=release)}")

    def uninstall_package(self, package: str) -> None:
        self.cli.run_elevated(
            f"dnf remove -y {package}", on_error=warn_on_failure(f"Unable to remove {package}"),
        )

    def cleanup_cache(self) -> str:
        return self.cli.run_elevated("dnf clean all", on_error=warn_on_failure("dnf clean all failed"))

    # -- services --------------------------------------------------------------

    def restart_service(self, *services: str) -> None:
        for service in services:
            if self.installed(service):
                logger.info("Restarting %s...", service)
                self.cli.quietly_elevated(f"systemctl restart {service}")

    def stop_service(self, *services: str) -> None:
        for service in services:
            if self.installed(service):
                logger.info("Stopping %s...", service)
                self.cli.quietly_elevated(f"systemctl stop {service}")

    def fetch_root_services(self) -> list[ServiceRecord]:
        units = parse_listing_json(self.cli.run(LIST_UNITS), SystemdUnit, "systemctl")
        return unique_by_name(
            ServiceRecord(
                name=unit.unit.removesuffix(".service"),
                running=unit.active == "active",
                status=unit.active,
                owner_is_root=True,
                unit_or_file_ref=unit.unit,
            )
            for unit in units
        )

    # -- PHP -------------------------------------------------------------------

    def parse_php_path(self, path: str) -> PhpIdentity:
        match = _PHP_PATH.match(path or "")
        if not match:
            return PhpIdentity()
        return PhpIdentity(
            prefix=match.group("prefix"),
            base_name=match.group("base"),
            version_suffix=match.group("version"),
        )

    def linked_php_path(self) -> str:
        path = f"{self.bin_dir}/php"
        if not self.files.exists(path):
            return ""
        return self.files.realpath(path)

    def get_php_executable_path(self, version: str | None = None) -> str:
        """Versioned PHP binary in the bin dir, e.g. /usr/bin/php8.2 or /usr/bin/php82."""
        default = f"{self.bin_dir}/php"
        if not version:
            return default

        number = version.removeprefix("php").lstrip("@")
        if not number:
            return default

        for candidate in (f"php{number}", f"php{number.replace('.', '')}"):
            path = f"{self.bin_dir}/{candidate}"
            if self.files.exists(path):
                return path
        return default

    def link(self, package: str, force: bool = False) -> str:
        """Point `<bin_dir>/php` at the executable of `package`."""
        target = f"{self.bin_dir}/php"
        source = self.get_php_executable_path(package)

        if source == target:
            raise LinkError(package, f"No PHP executable for {package} in {self.bin_dir}")
        if self.files.exists(target) and not self.files.is_link(target) and not force:
            raise LinkError(package, f"{target} is a regular file, refusing to replace it")

        def fail(exit_code: int, error_output: str) -> None:
            raise LinkError(package, error_output)

        logger.info("Linking %s -> %s", target, PurePosixPath(source).name)
        return self.cli.run_elevated(f"ln -sf {source} {target}", on_error=fail)

    def unlink(self, package: str) -> str:
        """Remove the `<bin_dir>/php` symlink if it currently points at `package`."""
        target = f"{self.bin_dir}/php"
        if not self.files.is_link(target):
            return ""
        if not are_php_versions_equal(self.get_linked_php_formula(), package):
            logger.debug("%s is not linked, leaving %s alone", package, target)
            return ""

        def fail(exit_code: int, error_output: str) -> None:
            raise LinkError(package, error_output, action="unlink")

        return self.cli.run_elevated(f"rm -f {target}", on_error=fail)

    def php_fpm_service_name(self, formula: str) -> str:
        return f"{formula}-fpm"

