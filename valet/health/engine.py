"""Health check engine — runs the Valet environment checks and builds a report.

Checks: install layout, config.json, package manager, dnsmasq, nginx, the
linked PHP and the valet.sock socket. Every check runs on every call, in
declaration order, even after a failure, so one broken service never hides
another.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..configuration import Configuration, missing_keys
from ..errors import ConfigurationError
from ..filesystem import Filesystem
from ..services.base import ServiceBackend

logger = logging.getLogger(__name__)

INSTALL_DIRECTORIES = ("Drivers", "Sites", "Log", "Certificates")
SOCKET_NAME = "valet.sock"


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Check:
    """A named predicate plus the hint shown when it fails."""

    description: str
    predicate: Callable[[], bool]
    debug: str


@dataclass(frozen=True)
class CheckOutcome:
    description: str
    passed: bool


@dataclass
class HealthReport:
    """Result of one `HealthCheckEngine.check()` call."""

    success: bool
    results: list[CheckOutcome] = field(default_factory=list)
    debug_instructions: list[str] = field(default_factory=list)

    def debug_text(self) -> str:
        return "\n".join(self.debug_instructions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "output": [
                {"description": r.description, "success": "Yes" if r.passed else "No"}
                for r in self.results
            ],
            "debug": self.debug_text(),
        }


# ── Engine ───────────────────────────────────────────────────────────────────


class HealthCheckEngine:
    """Runs the fixed battery of Valet checks against one backend.

    Each `check()` call starts from an empty hint list and a fresh service
    snapshot. An instance must not be shared between threads.
    """

    def __init__(
        self,
        config: Configuration,
        backend: ServiceBackend,
        files: Filesystem,
        home: Path,
    ) -> None:
        self.config = config
        self.backend = backend
        self.files = files
        self.home = Path(home)

    def check(self) -> HealthReport:
        """Run every check and return the verdict, per-check results and hints."""
        self.backend.clear_service_cache()

        hints: list[str] = []
        results: list[CheckOutcome] = []
        success = True

        for check in self.checks(note=hints.append):
            passed = self._evaluate(check)
            if not passed:
                hints.append(check.debug)
                success = False
            results.append(CheckOutcome(description=check.description, passed=passed))

        report = HealthReport(
            success=success,
            results=results,
            debug_instructions=list(dict.fromkeys(hints)),
        )
        logger.info(
            "Health check finished: %d/%d passed",
            sum(r.passed for r in results), len(results),
        )
        return report

    def checks(self, note: Callable[[str], None] | None = None) -> list[Check]:
        """Build the ordered list of checks.

        `note` receives extra hints discovered while a predicate runs (the
        config check names the missing key this way).
        """
        note = note or (lambda hint: None)
        backend = self.backend
        pm = backend.package_manager
        nginx = backend.nginx_service_name()

        linked_php = backend.get_linked_php_formula()
        php_label = linked_php or "none"
        php_service = backend.php_fpm_service_name(linked_php) if linked_php else ""

        return [
            Check(
                description="Is Valet fully installed?",
                predicate=self.valet_installed,
                debug="Run `composer require laravel/valet` and `valet install`.",
            ),
            Check(
                description="Is Valet config valid?",
                predicate=lambda: self.config_valid(note),
                debug="Run `valet install` to update your configuration.",
            ),
            Check(
                description=f"Is {pm} installed?",
                predicate=backend.package_manager_available,
                debug=f"Install {pm} and make sure it is on your PATH.",
            ),
            Check(
                description="Is DnsMasq installed?",
                predicate=lambda: backend.installed("dnsmasq"),
                debug="Run `valet install`.",
            ),
            Check(
                description="Is DnsMasq running?",
                predicate=lambda: backend.is_service_running("dnsmasq"),
                debug="Run `valet restart`.",
            ),
            Check(
                description="Is DnsMasq running as root?",
                predicate=lambda: backend.is_service_running_as_root("dnsmasq"),
                debug=f"Uninstall DnsMasq with {pm} and run `valet install`.",
            ),
            Check(
                description="Is Nginx installed?",
                predicate=backend.has_installed_nginx,
                debug="Run `valet install`.",
            ),
            Check(
                description="Is Nginx running?",
                predicate=lambda: backend.is_service_running(nginx),
                debug="Run `valet restart`.",
            ),
            Check(
                description="Is Nginx running as root?",
                predicate=lambda: backend.is_service_running_as_root(nginx),
                debug=f"Uninstall Nginx with {pm} and run `valet install`.",
            ),
            Check(
                description="Is PHP installed?",
                predicate=backend.has_installed_php,
                debug="Run `valet install`.",
            ),
            Check(
                description=f"Is linked PHP ({php_label}) running?",
                predicate=lambda: bool(php_service) and backend.is_service_running(php_service),
                debug="Run `valet restart`.",
            ),
            Check(
                description=f"Is linked PHP ({php_label}) running as root?",
                predicate=lambda: bool(php_service) and backend.is_service_running_as_root(php_service),
                debug=f"Uninstall PHP with {pm} and run `valet use {backend.LATEST_PHP_VERSION}`.",
            ),
            Check(
                description=f"Is {SOCKET_NAME} present?",
                predicate=lambda: self.files.exists(self.home / SOCKET_NAME),
                debug="Run `valet install`.",
            ),
        ]

    # -- predicates ------------------------------------------------------------

    def valet_installed(self) -> bool:
        return (
            self.files.is_dir(self.home)
            and self.files.exists(self.config.path())
            and all(self.files.is_dir(self.home / name) for name in INSTALL_DIRECTORIES)
        )

    def config_valid(self, note: Callable[[str], None]) -> bool:
        try:
            config = self.config.read()
        except (ConfigurationError, OSError) as e:
            logger.debug("Config unreadable: %s", e)
            return False

        missing = missing_keys(config)
        if missing:
            note(
                f'Your Valet config is missing the "{missing[0]}" key. '
                "Re-add this manually, or delete your config file and re-install."
            )
            return False
        return True

    def _evaluate(self, check: Check) -> bool:
        try:
            return bool(check.predicate())
        except Exception as e:
            logger.warning("Check %r raised %s: %s", check.description, type(e).__name__, e)
            return False
