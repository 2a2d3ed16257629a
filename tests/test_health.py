"""Tests for the Health Check Engine."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from valet.configuration import Configuration
from valet.health.engine import Check, CheckOutcome, HealthCheckEngine, HealthReport
from valet.services import DnfBackend, ServiceBackend
from valet.services.dnf import LIST_UNITS

VALID_CONFIG = {"tld": "test", "loopback": "127.0.0.1", "paths": ["/home/taylor/Sites"]}


@pytest.fixture
def home(tmp_path: Path) -> Path:
    (tmp_path / "config.json").write_text(json.dumps(VALID_CONFIG))
    return tmp_path


@pytest.fixture
def healthy_files(files: MagicMock) -> MagicMock:
    files.exists.return_value = True
    files.is_dir.return_value = True
    return files


@pytest.fixture
def backend() -> MagicMock:
    """Backend double where every query answers True."""
    b = MagicMock(spec=ServiceBackend)
    b.package_manager = "DNF"
    b.LATEST_PHP_VERSION = "php8.4"
    b.nginx_service_name.return_value = "nginx"
    b.get_linked_php_formula.return_value = "php8.2"
    b.php_fpm_service_name.side_effect = lambda formula: f"{formula}-fpm"
    for name in (
        "package_manager_available",
        "installed",
        "has_installed_nginx",
        "has_installed_php",
        "is_service_running",
        "is_service_running_as_root",
    ):
        getattr(b, name).return_value = True
    return b


@pytest.fixture
def engine(home: Path, backend: MagicMock, healthy_files: MagicMock) -> HealthCheckEngine:
    return HealthCheckEngine(Configuration(home), backend, healthy_files, home)


# ── HealthReport ─────────────────────────────────────────────────────────────


class TestHealthReport:
    def test_debug_text_joins_lines(self) -> None:
        report = HealthReport(success=False, debug_instructions=["one", "two"])
        assert report.debug_text() == "one\ntwo"

    def test_to_dict(self) -> None:
        report = HealthReport(
            success=False,
            results=[CheckOutcome("A?", True), CheckOutcome("B?", False)],
            debug_instructions=["fix B"],
        )
        assert report.to_dict() == {
            "success": False,
            "output": [
                {"description": "A?", "success": "Yes"},
                {"description": "B?", "success": "No"},
            ],
            "debug": "fix B",
        }


# ── Aggregation ──────────────────────────────────────────────────────────────


class TestAggregation:
    def _with_checks(self, engine: HealthCheckEngine, checks: list[Check], monkeypatch) -> None:
        monkeypatch.setattr(engine, "checks", lambda note=None: checks)

    def test_every_predicate_runs_once_after_failure(self, engine, monkeypatch) -> None:
        predicates = [MagicMock(return_value=False)] + [MagicMock(return_value=True) for _ in range(4)]
        self._with_checks(engine, [Check(f"check {i}", p, f"fix {i}") for i, p in enumerate(predicates)], monkeypatch)

        report = engine.check()

        assert report.success is False
        assert [p.call_count for p in predicates] == [1] * 5
        assert [r.passed for r in report.results] == [False, True, True, True, True]

    def test_debug_hints_deduplicated_in_order(self, engine, monkeypatch) -> None:
        self._with_checks(engine, [
            Check("a", lambda: False, "Run `valet restart`."),
            Check("b", lambda: True, "never shown"),
            Check("c", lambda: False, "Run `valet install`."),
            Check("d", lambda: False, "Run `valet restart`."),
        ], monkeypatch)

        report = engine.check()

        assert report.debug_instructions == ["Run `valet restart`.", "Run `valet install`."]
        assert report.debug_text() == "Run `valet restart`.\nRun `valet install`."

    def test_raising_predicate_counts_as_failure(self, engine, monkeypatch) -> None:
        after = MagicMock(return_value=True)

        def boom() -> bool:
            raise RuntimeError("systemctl vanished")

        self._with_checks(engine, [Check("a", boom, "fix a"), Check("b", after, "fix b")], monkeypatch)

        report = engine.check()

        assert not report.success
        assert report.results == [CheckOutcome("a", False), CheckOutcome("b", True)]
        after.assert_called_once()

    def test_hints_do_not_leak_between_runs(self, engine, monkeypatch) -> None:
        state = {"ok": False}
        self._with_checks(engine, [Check("a", lambda: state["ok"], "fix a")], monkeypatch)

        assert engine.check().debug_instructions == ["fix a"]
        state["ok"] = True
        second = engine.check()
        assert second.success
        assert second.debug_instructions == []


# ── Declared checks ──────────────────────────────────────────────────────────


class TestDeclaredChecks:
    def test_all_healthy(self, engine: HealthCheckEngine) -> None:
        report = engine.check()
        assert report.success
        assert len(report.results) == 13
        assert report.debug_instructions == []

    def test_descriptions_in_order(self, engine: HealthCheckEngine) -> None:
        descriptions = [c.description for c in engine.checks()]
        assert descriptions == [
            "Is Valet fully installed?",
            "Is Valet config valid?",
            "Is DNF installed?",
            "Is DnsMasq installed?",
            "Is DnsMasq running?",
            "Is DnsMasq running as root?",
            "Is Nginx installed?",
            "Is Nginx running?",
            "Is Nginx running as root?",
            "Is PHP installed?",
            "Is linked PHP (php8.2) running?",
            "Is linked PHP (php8.2) running as root?",
            "Is valet.sock present?",
        ]

    def test_linked_php_resolved_once_per_run(self, engine, backend) -> None:
        engine.check()
        backend.get_linked_php_formula.assert_called_once()
        backend.clear_service_cache.assert_called_once()

    def test_linked_php_checks_use_fpm_service(self, engine, backend) -> None:
        engine.check()
        backend.is_service_running.assert_any_call("php8.2-fpm")
        backend.is_service_running_as_root.assert_any_call("php8.2-fpm")

    def test_no_linked_php_fails_php_service_checks(self, engine, backend) -> None:
        backend.get_linked_php_formula.return_value = ""
        report = engine.check()
        failed = [r.description for r in report.results if not r.passed]
        assert failed == ["Is linked PHP (none) running?", "Is linked PHP (none) running as root?"]

    def test_nginx_not_running(self, engine, backend) -> None:
        backend.is_service_running.side_effect = lambda name: name != "nginx"
        backend.is_service_running_as_root.side_effect = lambda name: name != "nginx"

        report = engine.check()

        assert not report.success
        assert report.debug_instructions == [
            "Run `valet restart`.",
            "Uninstall Nginx with DNF and run `valet install`.",
        ]

    def test_missing_install_directory(self, engine, healthy_files, home) -> None:
        healthy_files.is_dir.side_effect = lambda path: Path(path) != home / "Certificates"
        assert not engine.valet_installed()

    def test_socket_checked_under_home(self, engine, healthy_files, home) -> None:
        healthy_files.exists.side_effect = lambda path: Path(path) != home / "valet.sock"
        report = engine.check()
        assert report.results[-1] == CheckOutcome("Is valet.sock present?", False)
        assert report.debug_instructions == ["Run `valet install`."]


class TestConfigCheck:
    def test_missing_key_adds_specific_hint(self, engine, home) -> None:
        (home / "config.json").write_text(json.dumps({"tld": "test", "paths": []}))

        report = engine.check()

        assert report.results[1] == CheckOutcome("Is Valet config valid?", False)
        assert report.debug_instructions == [
            'Your Valet config is missing the "loopback" key. '
            "Re-add this manually, or delete your config file and re-install.",
            "Run `valet install` to update your configuration.",
        ]

    def test_malformed_json_is_a_failed_check(self, engine, home) -> None:
        (home / "config.json").write_text("{tld: test")
        report = engine.check()
        assert report.results[1].passed is False
        assert report.debug_instructions == ["Run `valet install` to update your configuration."]

    def test_undecodable_file_is_a_failed_check(self, engine, home) -> None:
        (home / "config.json").write_bytes(b"\xff\xfe\x00{")
        report = engine.check()
        assert report.results[1].passed is False
        assert report.results[2].passed is True

    def test_missing_file_is_a_failed_check(self, engine, home) -> None:
        (home / "config.json").unlink()
        assert engine.check().results[1].passed is False


# ── End to end with the DNF backend ──────────────────────────────────────────


class TestWithDnfBackend:
    def test_healthy_fedora_box(self, make_cli, healthy_files, home) -> None:
        units = json.dumps([
            {"unit": "dnsmasq.service", "active": "active"},
            {"unit": "nginx.service", "active": "active"},
            {"unit": "php-fpm.service", "active": "active"},
        ])
        cli = make_cli(user={
            "which dnf": "/usr/bin/dnf\n",
            "dnf list installed dnsmasq": "dnsmasq.x86_64 2.90 @fedora",
            "dnf list installed nginx": "nginx.x86_64 1.26 @fedora",
            "dnf list installed 2>/dev/null": "php.x86_64\nphp-fpm.x86_64\n",
            LIST_UNITS: units,
        })
        backend = DnfBackend(cli, healthy_files)
        engine = HealthCheckEngine(Configuration(home), backend, healthy_files, home)

        report = engine.check()

        assert report.success, report.debug_text()
        assert "Is linked PHP (php) running?" in [r.description for r in report.results]
        assert [c.args[0] for c in cli.run.call_args_list].count(LIST_UNITS) == 1

    def test_stopped_services_on_fedora(self, make_cli, healthy_files, home) -> None:
        cli = make_cli(user={"which dnf": "/usr/bin/dnf\n", LIST_UNITS: "[]"})
        backend = DnfBackend(cli, healthy_files)
        report = HealthCheckEngine(Configuration(home), backend, healthy_files, home).check()

        failed = {r.description for r in report.results if not r.passed}
        assert "Is DnsMasq running?" in failed
        assert "Is Nginx running as root?" in failed
        assert "Is DNF installed?" not in failed
