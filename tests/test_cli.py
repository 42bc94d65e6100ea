"""Tests for the typer command line."""

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from aurorus.modules.cli import EXIT_EXECUTION, EXIT_PLANNING, EXIT_UNEXPECTED, app, cancel_on_interrupt
from aurorus.modules.install import InstallOrchestrator
from aurorus.modules.models import ORIGIN_AUR, ORIGIN_REPO, InstalledPackage, PackageRecord
from aurorus.modules.registry import Registry
from aurorus.modules.remove import RemovalPlanner, Remover
from aurorus.modules.resolver import DependencyResolver
from aurorus.modules.runner import interrupts_shielded
from aurorus.modules.sources import LookupResult
from aurorus.modules.upgrade import UpdateChecker

runner = CliRunner()


class FakeServices:
    """Same wiring as cli.Services, around the test fakes."""

    def __init__(self, sources, registry, pacman, builder):
        self.sources = sources
        self.registry = registry
        self.pacman = pacman
        self.builder = builder
        self.aur = MagicMock()

    def resolver(self):
        return DependencyResolver(self.sources, self.registry, pins={}, system=self.pacman)

    def orchestrator(self):
        return InstallOrchestrator(self.registry, pacman=self.pacman, builder=self.builder)

    def planner(self):
        return RemovalPlanner(self.registry)

    def remover(self):
        return Remover(self.registry, pacman=self.pacman)

    def update_checker(self):
        return UpdateChecker(self.registry, aur=self.aur, pacman=self.pacman)

    def sync_registry(self):
        pass


@pytest.fixture
def services(sources, registry, pacman, builder):
    sources.add(PackageRecord.create("foo", "1.0-1", ORIGIN_AUR, depends=["bar"]))
    sources.add(PackageRecord.create("bar", "2.0-1", ORIGIN_REPO))
    svc = FakeServices(sources, registry, pacman, builder)
    with patch("aurorus.modules.cli.get_services", return_value=svc):
        yield svc


class TestInstall:
    def test_install(self, services):
        result = runner.invoke(app, ["install", "foo", "--yes"])

        assert result.exit_code == 0, result.output
        assert services.registry.get("foo").explicit
        assert not services.registry.get("bar").explicit
        assert services.builder.built == ["foo"]

    def test_dry_run_changes_nothing(self, services):
        result = runner.invoke(app, ["install", "foo", "--dry-run"])

        assert result.exit_code == 0
        assert "Install plan for foo" in result.output
        assert services.pacman.calls == []
        assert len(services.registry) == 0

    def test_declined_confirmation(self, services):
        result = runner.invoke(app, ["install", "foo"], input="n\n")

        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert services.pacman.calls == []

    def test_unknown_package_is_planning_error(self, services):
        result = runner.invoke(app, ["install", "ghost", "--yes"])
        assert result.exit_code == EXIT_PLANNING
        assert "ghost" in result.output

    def test_step_failure_is_execution_error(self, services):
        services.pacman.fail = {"bar"}
        result = runner.invoke(app, ["install", "foo", "--yes"])

        assert result.exit_code == EXIT_EXECUTION
        assert "foo" not in services.registry

    def test_conflicting_origin_flags(self, services):
        result = runner.invoke(app, ["install", "foo", "--aur", "--repo"])
        assert result.exit_code == EXIT_PLANNING

    def test_unexpected_error(self):
        with patch("aurorus.modules.cli.get_services", side_effect=RuntimeError("boom")):
            result = runner.invoke(app, ["install", "foo", "--yes"])
        assert result.exit_code == EXIT_UNEXPECTED


class TestUninstall:
    @pytest.fixture
    def installed(self, services):
        services.registry = Registry(entries={
            "app": InstalledPackage("app", "1.0-1", ORIGIN_REPO, dependencies=["lib"], explicit=True),
            "lib": InstalledPackage("lib", "1.0-1", ORIGIN_AUR, explicit=True),
        })
        return services

    def test_in_use(self, installed):
        result = runner.invoke(app, ["uninstall", "lib", "--yes"])
        assert result.exit_code == EXIT_PLANNING
        assert "app" in result.output
        assert "lib" in installed.registry

    def test_forced(self, installed):
        result = runner.invoke(app, ["uninstall", "lib", "--force", "--yes"])
        assert result.exit_code == 0, result.output
        assert "lib" not in installed.registry
        assert "app" in installed.registry

    def test_not_installed(self, installed):
        result = runner.invoke(app, ["uninstall", "ghost", "--yes"])
        assert result.exit_code == EXIT_PLANNING


class TestSearch:
    def test_results_and_unavailable_origin(self, services):
        services.sources = MagicMock()
        services.sources.search.return_value = LookupResult(
            [PackageRecord.create("bash", "5.2-1", ORIGIN_REPO, repository="core")],
            {ORIGIN_AUR: "timed out"},
        )
        result = runner.invoke(app, ["search", "bash"])

        assert result.exit_code == 0
        assert "bash" in result.output
        assert "aur origin unavailable: timed out" in result.output


class TestUpdate:
    def test_up_to_date(self, services):
        result = runner.invoke(app, ["update", "--yes"])
        assert result.exit_code == 0
        assert "up to date" in result.output

    def test_rebuilds_newer_version(self, services):
        services.registry = Registry(entries={
            "foo": InstalledPackage("foo", "0.9-1", ORIGIN_AUR, dependencies=["bar"], explicit=True),
            "bar": InstalledPackage("bar", "2.0-1", ORIGIN_REPO),
        })
        services.aur.info_chunk.return_value = [PackageRecord.create("foo", "1.0-1", ORIGIN_AUR)]

        result = runner.invoke(app, ["update", "--yes"])

        assert result.exit_code == 0, result.output
        assert services.registry.get("foo").version == "1.0-1"
        assert services.registry.get("foo").explicit

    def test_repositories_are_upgraded_first(self, services):
        services.registry = Registry(entries={"bar": InstalledPackage("bar", "2.0-1", ORIGIN_REPO)})
        services.pacman.system["bar"] = InstalledPackage("bar", "2.1-1", ORIGIN_REPO)

        result = runner.invoke(app, ["update", "--yes"])

        assert result.exit_code == 0, result.output
        assert services.pacman.calls[0] == ("upgrade_system", "*", None)
        assert services.registry.get("bar").version == "2.1-1"

    def test_no_repos(self, services):
        result = runner.invoke(app, ["update", "--yes", "--no-repos"])
        assert result.exit_code == 0
        assert services.pacman.calls == []

    def test_declined_repository_upgrade_still_checks_aur(self, services):
        services.aur.info_chunk.return_value = []
        services.pacman.foreign = {"foo": "0.9-1"}
        result = runner.invoke(app, ["update"], input="n\n")

        assert result.exit_code == 0
        assert "Skipping repository packages" in result.output
        services.aur.info_chunk.assert_called_once_with(["foo"])

    def test_failed_repository_upgrade(self, services):
        services.pacman.fail = {"*"}
        result = runner.invoke(app, ["update", "--yes"])

        assert result.exit_code == EXIT_EXECUTION
        assert "pacman -Syu failed" in result.output
        services.aur.info_chunk.assert_not_called()

    def test_foreign_package_keeps_its_install_reason(self, services):
        services.pacman.foreign = {"foo": "0.9-1"}
        services.pacman.system["foo"] = InstalledPackage("foo", "0.9-1", ORIGIN_AUR, explicit=True)
        services.pacman.system["bar"] = InstalledPackage("bar", "2.0-1", ORIGIN_REPO)
        services.aur.info_chunk.return_value = [PackageRecord.create("foo", "1.0-1", ORIGIN_AUR)]

        result = runner.invoke(app, ["update", "--yes"])

        assert result.exit_code == 0, result.output
        assert services.builder.built == ["foo"]
        assert services.registry.get("foo").explicit
        assert "bar" not in services.registry


def test_cancel_scope_shields_child_processes():
    assert not interrupts_shielded()
    with cancel_on_interrupt() as cancel:
        assert interrupts_shielded()
        assert not cancel.is_set()
    assert not interrupts_shielded()
