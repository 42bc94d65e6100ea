# aurorus/modules/cli.py
"""
Command line interface of aurorus.

  aurorus search <term>
  aurorus install <name> [--aur|--repo] [--yes] [--dry-run]
  aurorus uninstall <name> [--force] [--yes] [--dry-run]
  aurorus update [--yes] [--no-repos]

Exit codes: 0 success, 1 planning error (nothing was changed),
2 execution failure (see the step report), 3 unexpected error.
"""

from __future__ import annotations
import json
import signal
import threading
import traceback
from contextlib import contextmanager
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from aurorus.modules import logger as _logger
from aurorus.modules.aur import AurClient
from aurorus.modules.build import AurBuilder, BuildError
from aurorus.modules.config import config
from aurorus.modules.install import InstallOrchestrator, InstallReport
from aurorus.modules.models import (
    FAILED,
    INSTALLED,
    NOT_ATTEMPTED,
    ORIGIN_AUR,
    ORIGIN_REPO,
    REMOVED,
    SKIPPED,
    SourceError,
)
from aurorus.modules.pacman import PacmanClient
from aurorus.modules.registry import Registry, RegistryError
from aurorus.modules.remove import RemovalError, RemovalPlan, RemovalPlanner, Remover
from aurorus.modules.resolver import DependencyResolver, InstallPlan, ResolutionError, load_pins
from aurorus.modules.runner import CommandError, CommandRunner, shield_interrupts
from aurorus.modules.sources import SourceClient
from aurorus.modules.upgrade import UpdateChecker

EXIT_PLANNING = 1
EXIT_EXECUTION = 2
EXIT_UNEXPECTED = 3

PLANNING_ERRORS = (SourceError, ResolutionError, RemovalError, RegistryError)

STATUS_STYLES = {
    INSTALLED: "green",
    REMOVED: "green",
    SKIPPED: "cyan",
    FAILED: "bold red",
    NOT_ATTEMPTED: "yellow",
}

app = typer.Typer(help="Search, install and remove packages from the AUR and the pacman repositories",
                  no_args_is_help=True)
console = Console()
LOG = _logger.Logger("cli")


class Services:
    """Core components wired from the configuration."""

    def __init__(self):
        runner = CommandRunner(use_sudo=config.getboolean("pacman", "use_sudo", fallback=True))
        self.pacman = PacmanClient(runner=runner)
        self.aur = AurClient()
        self.sources = SourceClient(repo=self.pacman, aur=self.aur)
        self.registry = Registry()
        self.builder = AurBuilder()

    def resolver(self) -> DependencyResolver:
        return DependencyResolver(self.sources, self.registry, pins=load_pins(), system=self.pacman)

    def orchestrator(self) -> InstallOrchestrator:
        return InstallOrchestrator(self.registry, pacman=self.pacman, builder=self.builder)

    def planner(self) -> RemovalPlanner:
        return RemovalPlanner(self.registry)

    def remover(self) -> Remover:
        return Remover(self.registry, pacman=self.pacman)

    def update_checker(self) -> UpdateChecker:
        return UpdateChecker(self.registry, aur=self.aur, pacman=self.pacman)

    def sync_registry(self):
        """With [registry] track_system, packages installed outside aurorus are tracked too."""
        if not config.getboolean("registry", "track_system", fallback=False):
            return
        installed = self.pacman.query_installed()
        with self.registry.exclusive():
            self.registry.merge_system(installed)


def get_services() -> Services:
    return Services()


# ---------------------------
# helpers
# ---------------------------
def print_panel(title: str, text: str, style: str = "green"):
    console.print(Panel(text, title=title, style=style))


@contextmanager
def handle_errors():
    try:
        yield
    except typer.Exit:
        raise
    except PLANNING_ERRORS as e:
        LOG.error(str(e))
        print_panel("error", str(e), style="red")
        raise typer.Exit(EXIT_PLANNING)
    except (BuildError, CommandError) as e:
        LOG.error(str(e))
        print_panel("error", str(e), style="red")
        raise typer.Exit(EXIT_EXECUTION)
    except Exception as e:
        LOG.error(traceback.format_exc())
        print_panel("unexpected error", f"{type(e).__name__}: {e}", style="red")
        raise typer.Exit(EXIT_UNEXPECTED)


@contextmanager
def cancel_on_interrupt():
    """Ctrl-C asks the running operation to stop before its next step; the running tool finishes."""
    cancel = threading.Event()

    def _handler(signum, frame):
        console.print("[yellow]Interrupted: stopping after the current step[/yellow]")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        with shield_interrupts():
            yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def confirm(question: str, yes: bool) -> bool:
    if yes:
        return True
    return Confirm.ask(question, default=True, console=console)


def show_install_plan(plan: InstallPlan):
    LOG.debug(f"install plan: {json.dumps(plan.to_dict())}")
    table = Table(title=f"Install plan for {plan.root}")
    table.add_column("#", justify="right")
    table.add_column("Package", style="bold")
    table.add_column("Version")
    table.add_column("Origin")
    table.add_column("Reason")
    for i, node in enumerate(plan, 1):
        table.add_row(str(i), node.name, node.version, node.origin,
                      "explicit" if node.explicit else "dependency")
    console.print(table)
    if plan.satisfied:
        already = ", ".join(f"{dep} ({pkg})" if dep != pkg else dep for dep, pkg in sorted(plan.satisfied.items()))
        console.print(f"[cyan]Already installed:[/cyan] {already}")


def show_removal_plan(plan: RemovalPlan):
    LOG.debug(f"removal plan: {json.dumps(plan.to_dict())}")
    table = Table(title=f"Removal plan for {plan.target}")
    table.add_column("#", justify="right")
    table.add_column("Package", style="bold")
    table.add_column("Reason")
    for i, name in enumerate(plan, 1):
        reason = "orphan" if name in plan.orphans else ("target" if name == plan.target else "companion")
        table.add_row(str(i), name, reason)
    console.print(table)
    if plan.dependents:
        console.print(f"[yellow]Still required by:[/yellow] {', '.join(plan.dependents)}")


def show_report(report: InstallReport):
    LOG.debug(f"report: {json.dumps(report.to_dict())}")
    table = Table(title=f"{report.operation} {report.target}")
    table.add_column("Package", style="bold")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Reason", overflow="fold")
    for o in report.outcomes:
        style = STATUS_STYLES.get(o.status, "")
        table.add_row(o.name, o.version or "", f"[{style}]{o.status}[/{style}]", o.reason or "")
    console.print(table)


def finish(report: InstallReport):
    show_report(report)
    if report.ok:
        print_panel(report.operation, f"{report.operation} of {report.target} completed")
        return
    if report.cancelled:
        print_panel(report.operation, f"{report.operation} of {report.target} cancelled", style="yellow")
    else:
        failed = report.failed
        print_panel(report.operation, f"{failed.name} failed: {failed.reason}", style="red")
    raise typer.Exit(EXIT_EXECUTION)


# ---------------------------
# commands
# ---------------------------
@app.command()
def search(term: str):
    """Search both origins."""
    with handle_errors():
        services = get_services()
        results = services.sources.search(term)
    for origin, reason in sorted(results.unavailable.items()):
        console.print(f"[yellow]{origin} origin unavailable: {reason}[/yellow]")
    if not results:
        console.print(f"No packages match '{term}'")
        return
    table = Table(title=f"Search results for '{term}'")
    table.add_column("Repository")
    table.add_column("Package", style="bold")
    table.add_column("Version")
    table.add_column("Votes", justify="right")
    table.add_column("Description", overflow="fold")
    for r in results:
        votes = "" if r.votes is None else str(r.votes)
        table.add_row(r.repository or r.origin, r.name, r.version, votes, r.description)
    console.print(table)


@app.command()
def install(
    name: str,
    aur: bool = typer.Option(False, "--aur", help="Take the package from the AUR"),
    repo: bool = typer.Option(False, "--repo", help="Take the package from the binary repositories"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show the plan"),
):
    """Install a package and its missing dependencies."""
    if aur and repo:
        print_panel("error", "--aur and --repo are mutually exclusive", style="red")
        raise typer.Exit(EXIT_PLANNING)
    origin = ORIGIN_AUR if aur else (ORIGIN_REPO if repo else None)

    with handle_errors():
        services = get_services()
        services.sync_registry()
        plan = services.resolver().resolve(name, origin=origin)
        show_install_plan(plan)
        if dry_run:
            return
        if not confirm(f"Install {len(plan)} package(s)?", yes):
            console.print("Aborted")
            return
        with cancel_on_interrupt() as cancel:
            report = services.orchestrator().execute(plan, cancel=cancel)
    finish(report)


@app.command()
def uninstall(
    name: str,
    force: bool = typer.Option(False, "--force", help="Remove even if other packages depend on it"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show the plan"),
):
    """Remove a package and the dependencies nothing else needs."""
    with handle_errors():
        services = get_services()
        services.sync_registry()
        plan = services.planner().plan_removal(name, force=force)
        show_removal_plan(plan)
        if dry_run:
            return
        if not confirm(f"Remove {len(plan)} package(s)?", yes):
            console.print("Aborted")
            return
        with cancel_on_interrupt() as cancel:
            report = services.remover().execute(plan, cancel=cancel)
    finish(report)


def upgrade_repositories(services, yes: bool):
    """pacman -Syu, then the registry learns the new versions of the packages it tracks."""
    if not confirm("Upgrade repository packages (pacman -Syu)?", yes):
        console.print("Skipping repository packages")
        return
    with cancel_on_interrupt():
        res = services.pacman.upgrade_system()
    if not res.ok():
        print_panel("update", f"pacman -Syu failed: {res.reason()}", style="red")
        raise typer.Exit(EXIT_EXECUTION)
    with services.registry.exclusive():
        services.registry.update_versions(services.pacman.query_installed())


@app.command()
def update(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    repos: bool = typer.Option(True, "--repos/--no-repos", help="Upgrade repository packages first"),
):
    """Upgrade repository packages, then rebuild AUR packages that have a newer version."""
    with handle_errors():
        services = get_services()
        if repos:
            upgrade_repositories(services, yes)
        updates = services.update_checker().check()
    if not updates:
        print_panel("update", "All AUR packages are up to date")
        return

    table = Table(title="Available updates")
    table.add_column("Package", style="bold")
    table.add_column("Installed")
    table.add_column("Available", style="green")
    for u in updates:
        table.add_row(u.name, u.installed, u.available)
    console.print(table)
    if not confirm(f"Update {len(updates)} package(s)?", yes):
        console.print("Aborted")
        return

    failed: List[str] = []
    for u in updates:
        with handle_errors():
            entry = services.registry.get(u.name)
            # packages aurorus did not install keep the install reason pacman has for them
            explicit = entry.explicit if entry is not None else False
            plan = services.resolver().resolve(u.name, origin=ORIGIN_AUR, explicit=explicit)
            with cancel_on_interrupt() as cancel:
                report = services.orchestrator().execute(plan, cancel=cancel)
        show_report(report)
        if report.cancelled:
            raise typer.Exit(EXIT_EXECUTION)
        if not report.ok:
            failed.append(u.name)
    if failed:
        print_panel("update", f"Failed: {', '.join(failed)}", style="red")
        raise typer.Exit(EXIT_EXECUTION)
    print_panel("update", f"Updated {len(updates)} package(s)")


def main(argv: Optional[List[str]] = None):
    app(args=argv, prog_name="aurorus")


if __name__ == "__main__":
    main()
