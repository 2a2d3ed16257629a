"""Entry point for the `valet-status` console script."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from valet.command_line import CommandLine
from valet.config import settings
from valet.configuration import Configuration
from valet.errors import ValetError
from valet.filesystem import Filesystem
from valet.health import HealthCheckEngine, HealthReport
from valet.services import ServiceBackend, create_backend

console = Console()


def build_backend() -> ServiceBackend:
    return create_backend(
        CommandLine(),
        Filesystem(),
        backend=settings.valet_backend,
        brew_prefix=settings.brew_prefix,
        php_bin_dir=settings.php_bin_dir,
    )


def build_engine(backend: ServiceBackend) -> HealthCheckEngine:
    return HealthCheckEngine(
        config=Configuration(settings.home),
        backend=backend,
        files=backend.files,
        home=settings.home,
    )


def print_report(report: HealthReport) -> None:
    table = Table(title="Valet status", show_lines=False)
    table.add_column("Check")
    table.add_column("Success", justify="center")
    for result in report.results:
        table.add_row(result.description, "[green]Yes[/green]" if result.passed else "[red]No[/red]")
    console.print(table)

    if report.success:
        console.print("[bold green]Valet status: Healthy[/bold green]")
    else:
        console.print("[bold red]Valet status: Error[/bold red]")
        console.print(Panel(report.debug_text(), title="Debug suggestions", border_style="yellow"))


def run_status(as_json: bool = False) -> int:
    report = build_engine(build_backend()).check()
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)
    return 0 if report.success else 1


def run_which_php() -> int:
    console.print(build_backend().linked_php())
    return 0


def run_restart_php() -> int:
    backend = build_backend()
    with console.status("[bold green]Restarting PHP..."):
        backend.restart_linked_php()
    console.print(f"[green]Restarted {backend.get_linked_php_formula() or 'PHP'}[/green]")
    return 0


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Valet environment diagnostics")
    sub = parser.add_subparsers(dest="command")

    status_parser = sub.add_parser("status", help="Check the health of the Valet services")
    status_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    sub.add_parser("php", help="Show the linked PHP version")
    sub.add_parser("restart-php", help="Restart the linked PHP-FPM service")

    args = parser.parse_args()

    try:
        if args.command == "status":
            code = run_status(as_json=args.json)
        elif args.command == "php":
            code = run_which_php()
        elif args.command == "restart-php":
            code = run_restart_php()
        else:
            parser.print_help()
            code = 1
    except ValetError as e:
        console.print(f"[bold red]{e}[/bold red]")
        output = getattr(e, "output", "")
        if output:
            console.print(output)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
