# aurorus/modules/install.py
"""
Install orchestrator: runs an InstallPlan step by step.

 - repo nodes: pacman -S
 - AUR nodes: build in a scoped workspace, then pacman -U on the artifact
 - a package already installed (registry, else pacman -Qi) at a good enough version is
   skipped and left untouched
 - each step ends as installed / skipped / failed; the first failure halts the run and
   the untouched suffix is reported as not-attempted (completed steps stay installed)
 - the cancel signal is only looked at between steps
 - every installed step is recorded in the registry right away, with its dependency
   set as resolved
"""

from __future__ import annotations
import threading
from typing import Dict, List, Optional

from aurorus.modules import logger as _logger
from aurorus.modules.build import AurBuilder, BuildError
from aurorus.modules.models import (
    FAILED,
    INSTALLED,
    NOT_ATTEMPTED,
    ORIGIN_REPO,
    SKIPPED,
    InstalledPackage,
    SourceUnavailable,
)
from aurorus.modules.pacman import PacmanClient
from aurorus.modules.runner import CommandError
from aurorus.modules.versions import compare_versions, version_satisfies


class StepOutcome:
    def __init__(self, name: str, status: str, version: Optional[str] = None,
                 origin: Optional[str] = None, reason: Optional[str] = None):
        self.name = name
        self.status = status
        self.version = version
        self.origin = origin
        self.reason = reason

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "name": self.name,
            "status": self.status,
            "version": self.version,
            "origin": self.origin,
            "reason": self.reason,
        }

    def __repr__(self):
        return f"StepOutcome({self.name!r}, {self.status!r})"


class InstallReport:
    """Per-step outcomes of one run. Partial success is a normal, inspectable result."""

    def __init__(self, operation: str, target: str):
        self.operation = operation
        self.target = target
        self.outcomes: List[StepOutcome] = []
        self.cancelled = False

    def add(self, outcome: StepOutcome):
        self.outcomes.append(outcome)

    def with_status(self, status: str) -> List[str]:
        return [o.name for o in self.outcomes if o.status == status]

    @property
    def failed(self) -> Optional[StepOutcome]:
        for o in self.outcomes:
            if o.status == FAILED:
                return o
        return None

    @property
    def ok(self) -> bool:
        return self.failed is None and not self.cancelled

    @property
    def installed(self) -> List[str]:
        return self.with_status(INSTALLED)

    def to_dict(self):
        return {
            "operation": self.operation,
            "target": self.target,
            "ok": self.ok,
            "cancelled": self.cancelled,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def mark_not_attempted(report: InstallReport, nodes, reason: str):
    for node in nodes:
        report.add(StepOutcome(node.name, NOT_ATTEMPTED, version=node.version,
                               origin=node.origin, reason=reason))


class InstallOrchestrator:
    def __init__(self, registry, pacman: Optional[PacmanClient] = None,
                 builder: Optional[AurBuilder] = None, logger: Optional[_logger.Logger] = None):
        self.registry = registry
        self.pacman = pacman or PacmanClient()
        self.builder = builder or AurBuilder()
        self.log = logger or _logger.Logger("install")

    def execute(self, plan, cancel: Optional[threading.Event] = None) -> InstallReport:
        report = InstallReport("install", plan.root)
        nodes = list(plan)
        with self.registry.exclusive():
            for i, node in enumerate(nodes):
                if cancel is not None and cancel.is_set():
                    self.log.warning(f"Install of {plan.root} cancelled before {node.name}")
                    report.cancelled = True
                    mark_not_attempted(report, nodes[i:], "cancelled")
                    break
                outcome = self._step(node)
                report.add(outcome)
                if outcome.status == FAILED:
                    self.log.error(f"{node.name} failed: {outcome.reason}; halting")
                    self.log.record("failed", node.name, node.version, node.origin, detail=outcome.reason)
                    mark_not_attempted(report, nodes[i + 1:], f"{node.name} failed")
                    break
        return report

    def installed_state(self, name: str) -> Optional[InstalledPackage]:
        """What is installed under `name`: the registry entry, else pacman's own record."""
        entry = self.registry.get(name)
        if entry is not None:
            return entry
        return self.pacman.query_package(name)

    def already_satisfied(self, node, installed: Optional[InstalledPackage]) -> bool:
        if installed is None:
            return False
        if any(not version_satisfies(installed.version, c) for _, c in node.constraints):
            return False
        return compare_versions(installed.version, node.version) >= 0

    def _step(self, node) -> StepOutcome:
        record = node.record
        try:
            installed = self.installed_state(node.name)
        except SourceUnavailable as e:
            return StepOutcome(node.name, FAILED, version=node.version, origin=node.origin, reason=str(e))
        if self.already_satisfied(node, installed):
            self.log.info(f"{node.name} {installed.version} already installed, skipping")
            # a package present before aurorus touched it stays out of the registry
            return StepOutcome(node.name, SKIPPED, version=installed.version, origin=node.origin,
                               reason="already installed")

        # upgrading a dependency never demotes a package the user asked for
        explicit = node.explicit or bool(installed and installed.explicit)
        asdeps = not explicit
        try:
            if record.origin == ORIGIN_REPO:
                self.log.info(f"Installing {node.name} {node.version} from repositories")
                res = self.pacman.install(node.name, asdeps=asdeps)
            else:
                self.log.info(f"Installing {node.name} {node.version} from AUR")
                with self.builder.workspace(record) as ws:
                    artifact = self.builder.build(record, ws)
                    res = self.pacman.install_file(artifact, asdeps=asdeps)
        except BuildError as e:
            return StepOutcome(node.name, FAILED, version=node.version, origin=node.origin, reason=e.reason)
        except (CommandError, OSError) as e:
            return StepOutcome(node.name, FAILED, version=node.version, origin=node.origin, reason=str(e))

        if not res.ok():
            return StepOutcome(node.name, FAILED, version=node.version, origin=node.origin, reason=res.reason())

        try:
            self.registry.add(InstalledPackage(
                name=node.name,
                version=node.version,
                origin=node.origin,
                dependencies=node.dependencies,
                build_dependencies=node.build_dependencies,
                provides=record.provides,
                explicit=explicit,
            ))
        except OSError as e:
            return StepOutcome(node.name, FAILED, version=node.version, origin=node.origin,
                               reason=f"installed but not recorded: {e}")
        self.log.success(f"Installed {node.name} {node.version} ({node.origin})")
        self.log.record("installed", node.name, node.version, node.origin)
        return StepOutcome(node.name, INSTALLED, version=node.version, origin=node.origin)
