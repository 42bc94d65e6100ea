# aurorus/modules/remove.py
"""
Safe removal of installed packages.

RemovalPlanner.plan_removal(name, force=False)
 - NotInstalled when the registry does not know the package
 - InUseBy when other installed packages depend on it (unless forced; forcing never
   adds those dependents to the plan)
 - orphans: dependencies installed automatically (explicit=False) whose every dependent
   is itself being removed, computed until nothing changes
 - order: dependents before their dependencies

Remover.execute(plan) removes the planned packages one by one with pacman -R and drops
each from the registry as soon as pacman succeeds. The first failure halts the run.
"""

from __future__ import annotations
import threading
from typing import Iterator, List, Optional, Set

from aurorus.modules import logger as _logger
from aurorus.modules.install import InstallReport, StepOutcome
from aurorus.modules.models import FAILED, NOT_ATTEMPTED, REMOVED
from aurorus.modules.pacman import PacmanClient
from aurorus.modules.runner import CommandError

DEBUG_SUFFIX = "-debug"


class RemovalError(Exception):
    pass


class NotInstalled(RemovalError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package is not installed: {name}")


class InUseBy(RemovalError):
    def __init__(self, name: str, dependents: List[str]):
        self.name = name
        self.dependents = list(dependents)
        super().__init__(f"{name} is required by: {', '.join(self.dependents)} (use --force to remove anyway)")


class RemovalPlan:
    def __init__(self, target: str, packages: List[str], orphans: List[str],
                 forced: bool = False, dependents: Optional[List[str]] = None):
        self.target = target
        self.packages = list(packages)
        self.orphans = list(orphans)
        self.forced = forced
        # live dependents left in place by a forced removal
        self.dependents = list(dependents or [])

    def names(self) -> List[str]:
        return list(self.packages)

    def __iter__(self) -> Iterator[str]:
        return iter(self.packages)

    def __len__(self):
        return len(self.packages)

    def __contains__(self, name: str) -> bool:
        return name in self.packages

    def to_dict(self):
        return {
            "target": self.target,
            "packages": self.packages,
            "orphans": self.orphans,
            "forced": self.forced,
            "dependents": self.dependents,
        }


class RemovalPlanner:
    def __init__(self, registry, logger: Optional[_logger.Logger] = None):
        self.registry = registry
        self.log = logger or _logger.Logger("remove")

    def _depends_on(self, name: str) -> Set[str]:
        pkg = self.registry.get(name)
        if pkg is None:
            return set()
        return set(pkg.dependencies) | set(pkg.build_dependencies)

    def _only_needed_by(self, name: str, removal: Set[str]) -> bool:
        return all(d in removal for d in self.registry.dependents_of(name))

    def plan_removal(self, name: str, force: bool = False) -> RemovalPlan:
        if name not in self.registry:
            raise NotInstalled(name)

        dependents = self.registry.dependents_of(name)
        if dependents:
            if not force:
                raise InUseBy(name, dependents)
            self.log.warning(f"Forcing removal of {name}; still required by {', '.join(dependents)}")

        removal = {name}
        companion = name + DEBUG_SUFFIX
        if companion in self.registry and self._only_needed_by(companion, removal):
            removal.add(companion)

        orphans = []
        changed = True
        while changed:
            changed = False
            candidates = set()
            for pkg in removal:
                candidates |= self._depends_on(pkg)
            for candidate in sorted(candidates - removal):
                entry = self.registry.get(candidate)
                if entry is None or entry.explicit:
                    continue
                if self._only_needed_by(candidate, removal):
                    removal.add(candidate)
                    orphans.append(candidate)
                    changed = True

        order = self._order(name, removal)
        self.log.info(f"Removal plan for {name}: {order}")
        return RemovalPlan(name, order, orphans, forced=bool(dependents), dependents=dependents)

    def _order(self, target: str, removal: Set[str]) -> List[str]:
        """Dependents first: reverse of a dependencies-first walk restricted to the removal set."""
        visited = set()
        post = []

        def walk(pkg):
            visited.add(pkg)
            for dep in sorted(self._depends_on(pkg) & removal):
                if dep not in visited:
                    walk(dep)
            post.append(pkg)

        # the root walked last comes out first
        for pkg in sorted(removal - {target}, reverse=True) + [target]:
            if pkg not in visited:
                walk(pkg)
        return list(reversed(post))


class Remover:
    """Uninstall counterpart of the install orchestrator."""

    def __init__(self, registry, pacman: Optional[PacmanClient] = None, logger: Optional[_logger.Logger] = None):
        self.registry = registry
        self.pacman = pacman or PacmanClient()
        self.log = logger or _logger.Logger("remove")

    def execute(self, plan: RemovalPlan, cancel: Optional[threading.Event] = None) -> InstallReport:
        report = InstallReport("remove", plan.target)
        names = plan.names()
        planned = set(names)
        with self.registry.exclusive():
            for i, name in enumerate(names):
                if cancel is not None and cancel.is_set():
                    report.cancelled = True
                    self._mark_rest(report, names[i:], "cancelled")
                    break
                outcome = self._step(name, plan, planned)
                report.add(outcome)
                if outcome.status == FAILED:
                    self.log.error(f"Removal of {name} failed: {outcome.reason}; halting")
                    self.log.record("failed", name, outcome.version, outcome.origin, detail=outcome.reason)
                    self._mark_rest(report, names[i + 1:], f"{name} failed")
                    break
        return report

    def _mark_rest(self, report: InstallReport, names: List[str], reason: str):
        for name in names:
            report.add(StepOutcome(name, NOT_ATTEMPTED, reason=reason))

    def _step(self, name: str, plan: RemovalPlan, planned: Set[str]) -> StepOutcome:
        entry = self.registry.get(name)
        if entry is None:
            return StepOutcome(name, FAILED, reason="no longer installed")
        # state may have moved since planning
        outside = [d for d in self.registry.dependents_of(name) if d not in planned]
        if outside and not (plan.forced and name == plan.target):
            return StepOutcome(name, FAILED, version=entry.version, origin=entry.origin,
                               reason=f"required by {', '.join(outside)}")
        try:
            res = self.pacman.remove(name)
        except CommandError as e:
            return StepOutcome(name, FAILED, version=entry.version, origin=entry.origin, reason=str(e))
        if not res.ok():
            return StepOutcome(name, FAILED, version=entry.version, origin=entry.origin, reason=res.reason())
        try:
            self.registry.remove(name)
        except OSError as e:
            return StepOutcome(name, FAILED, version=entry.version, origin=entry.origin,
                               reason=f"removed but still recorded: {e}")
        self.log.success(f"Removed {name} {entry.version}")
        self.log.record("removed", name, entry.version, entry.origin)
        return StepOutcome(name, REMOVED, version=entry.version, origin=entry.origin)
