# aurorus/modules/resolver.py
"""
Dependency resolver: turns one requested name into an ordered install plan.

Depth-first traversal from the root:
 - a name already resolved (directly or through a provides alias) is reused, never re-fetched
 - a name still in progress closes a cycle -> CyclicDependency
 - otherwise the source client is asked; when both origins know the name the binary
   repository wins, unless the name is pinned (root requested with an explicit origin,
   or listed in the pins file)
 - when the origin that would win did not answer, SourceUnavailable is raised instead of
   falling back to the other one, so the choice never depends on which origin answered
 - dependencies already satisfied by an installed package are skipped, whether aurorus
   installed it (registry) or not (system view, i.e. pacman -Qi)
 - a node is appended to the plan once all its dependencies are in it (post-order),
   which is a valid install order

Every constraint placed on a name is kept; incompatible constraints raise VersionConflict.
Resolution only reads: nothing is installed or written.
"""

from __future__ import annotations
import os
from typing import Dict, Iterator, List, Optional, Tuple

import yaml

from aurorus.modules import logger as _logger
from aurorus.modules.config import config
from aurorus.modules.models import ORIGIN_AUR, ORIGIN_REPO, ORIGINS, NotFound, PackageRecord, SourceUnavailable
from aurorus.modules.versions import constraints_compatible, parse_dependency, version_satisfies

UNVISITED = "unvisited"
IN_PROGRESS = "in-progress"
RESOLVED = "resolved"

DEFAULT_PINS_FILE = "~/.config/aurorus/pins.yaml"


class ResolutionError(Exception):
    pass


class CyclicDependency(ResolutionError):
    def __init__(self, path: List[str]):
        self.path = list(path)
        super().__init__(f"Cyclic dependency: {' -> '.join(self.path)}")


class VersionConflict(ResolutionError):
    def __init__(self, name: str, constraints: List[Tuple[str, str]], available: Optional[str] = None):
        self.name = name
        self.constraints = list(constraints)
        self.available = available
        wanted = ", ".join(f"{dep} wants {name}{c}" for dep, c in self.constraints)
        extra = f" (available: {available})" if available else ""
        super().__init__(f"Version conflict on {name}: {wanted}{extra}")


class PinsError(ResolutionError):
    pass


def load_pins(path: Optional[str] = None) -> Dict[str, str]:
    """
    Reads the origin pins file, a YAML mapping of package name to origin:

        yay: aur
        firefox: repo
    """
    path = path or config.getpath("paths", "pins_file", fallback=DEFAULT_PINS_FILE)
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as e:
        raise PinsError(f"Could not read pins file {path}: {e}")
    if not isinstance(data, dict):
        raise PinsError(f"Pins file {path} must be a mapping of package name to origin")
    pins = {}
    for name, origin in data.items():
        origin = str(origin).strip().lower()
        if origin not in ORIGINS:
            raise PinsError(f"Invalid origin '{origin}' for {name} in {path} (expected one of {ORIGINS})")
        pins[str(name)] = origin
    return pins


class DependencyNode:
    """One vertex of the graph. Children are indexes into the owning graph."""

    def __init__(self, index: int, record: PackageRecord, explicit: bool = False):
        self.index = index
        self.record = record
        self.explicit = explicit
        self.state = UNVISITED
        self.children: List[int] = []
        # names this package was resolved against; installed providers included
        self.dependencies: List[str] = []
        self.build_dependencies: List[str] = []
        self.constraints: List[Tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def origin(self) -> str:
        return self.record.origin

    @property
    def version(self) -> str:
        return self.record.version

    def __repr__(self):
        return f"DependencyNode({self.name!r}, {self.origin}, {self.state})"


class DependencyGraph:
    """Arena of nodes, indexed by name and by provides alias."""

    def __init__(self):
        self.nodes: List[DependencyNode] = []
        self._by_name: Dict[str, int] = {}
        self._by_alias: Dict[str, int] = {}

    def add(self, record: PackageRecord, explicit: bool = False) -> DependencyNode:
        if record.name in self._by_name:
            raise ValueError(f"{record.name} is already in the graph")
        node = DependencyNode(len(self.nodes), record, explicit=explicit)
        self.nodes.append(node)
        self._by_name[record.name] = node.index
        for alias in sorted(record.provides):
            self._by_alias.setdefault(alias, node.index)
        return node

    def get(self, name: str) -> Optional[DependencyNode]:
        idx = self._by_name.get(name)
        if idx is None:
            idx = self._by_alias.get(name)
        return self.nodes[idx] if idx is not None else None

    def children(self, node: DependencyNode) -> List[DependencyNode]:
        return [self.nodes[i] for i in node.children]

    def __len__(self):
        return len(self.nodes)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


class InstallPlan:
    """Nodes in install order: every node comes after all of its dependencies."""

    def __init__(self, root: str, graph: DependencyGraph, explicit: bool = True):
        self.root = root
        self.graph = graph
        # whether the root is recorded as user-requested once installed
        self.explicit = explicit
        self.nodes: List[DependencyNode] = []
        # dependency name -> installed package already satisfying it
        self.satisfied: Dict[str, str] = {}

    def append(self, node: DependencyNode):
        self.nodes.append(node)

    def names(self) -> List[str]:
        return [n.name for n in self.nodes]

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(self.nodes)

    def __len__(self):
        return len(self.nodes)

    def __contains__(self, name: str) -> bool:
        return name in self.names()

    def to_dict(self):
        return {
            "root": self.root,
            "steps": [
                {
                    "name": n.name,
                    "version": n.version,
                    "origin": n.origin,
                    "explicit": n.explicit,
                    "dependencies": n.dependencies,
                    "build_dependencies": n.build_dependencies,
                }
                for n in self.nodes
            ],
            "satisfied": dict(self.satisfied),
        }


class DependencyResolver:
    def __init__(self, sources, registry, pins: Optional[Dict[str, str]] = None,
                 prefer: Optional[str] = None, system=None, logger: Optional[_logger.Logger] = None):
        """
        sources: object with lookup(name) -> list of PackageRecord (see SourceClient)
        registry: installed-package registry, read only here
        pins: name -> origin overrides of the preference policy
        prefer: origin chosen when a name exists in both (default: repo)
        system: object with query_package(name) for packages installed outside aurorus
        """
        self.sources = sources
        self.registry = registry
        self.pins = dict(pins or {})
        self.system = system
        self.prefer = prefer or config.get("resolver", "prefer_origin", fallback=ORIGIN_REPO)
        if self.prefer not in ORIGINS:
            raise PinsError(f"Invalid preferred origin: {self.prefer}")
        self.log = logger or _logger.Logger("resolver")

    # -------------------------
    # origin policy
    # -------------------------
    def select_record(self, name: str, records: List[PackageRecord], pinned: Optional[str] = None,
                      unavailable: Optional[Dict[str, str]] = None) -> PackageRecord:
        """Picks exactly one record for a name. Deterministic for the same inputs."""
        wanted = pinned or self.prefer
        if unavailable and wanted in unavailable:
            raise SourceUnavailable(wanted, unavailable[wanted], name=name)
        exact = [r for r in records if r.name == name]
        candidates = exact or list(records)
        if pinned:
            candidates = [r for r in candidates if r.origin == pinned]
            if not candidates:
                raise NotFound(name, origin=pinned)
            return candidates[0]
        order = [self.prefer] + [o for o in ORIGINS if o != self.prefer]
        for origin in order:
            for r in candidates:
                if r.origin == origin:
                    if len({c.origin for c in candidates}) > 1:
                        self.log.info(f"{name} exists in both origins; using {origin} ({r.version})")
                    return r
        return candidates[0]

    # -------------------------
    # traversal
    # -------------------------
    def resolve(self, root: str, origin: Optional[str] = None, explicit: bool = True) -> InstallPlan:
        """
        Builds the plan for `root`. `origin` pins the root to one origin
        (an explicit AUR request keeps AUR even when the repositories carry the name).
        `explicit=False` plans the root as a dependency (updates of dependency packages).
        """
        if origin is not None and origin not in ORIGINS:
            raise PinsError(f"Invalid origin: {origin}")
        graph = DependencyGraph()
        plan = InstallPlan(root, graph, explicit=explicit)
        constraints: Dict[str, List[Tuple[str, str]]] = {}
        pins = dict(self.pins)
        if origin:
            pins[root] = origin

        self.log.info(f"Resolving dependencies for {root}")
        self._visit(root, None, None, graph, plan, constraints, pins, path=[])
        self.log.info(f"Plan for {root}: {plan.names()} (already satisfied: {sorted(plan.satisfied)})")
        return plan

    def _add_constraint(self, name, constraint, dependent, constraints):
        if not constraint:
            return
        entries = constraints.setdefault(name, [])
        entries.append((dependent, constraint))
        if not constraints_compatible([c for _, c in entries]):
            raise VersionConflict(name, entries)

    def _visit(self, name: str, constraint: Optional[str], dependent: Optional[str],
               graph: DependencyGraph, plan: InstallPlan, constraints, pins, path: List[str]):
        """Returns the node for `name`, or the name of the installed package satisfying it."""
        self._add_constraint(name, constraint, dependent, constraints)

        node = graph.get(name)
        if node is not None:
            if node.state == IN_PROGRESS:
                raise CyclicDependency(path[path.index(node.name):] + [node.name])
            self._check_version(name, node.record, constraints)
            if constraint:
                node.constraints.append((dependent, constraint))
            return node

        if dependent is not None:
            installed = self.registry.find_provider(name, constraint)
            if installed is not None:
                plan.satisfied[name] = installed.name
                self.log.debug(f"{name} already satisfied by installed {installed.name} {installed.version}")
                return installed.name
            system_pkg = self.system.query_package(name) if self.system is not None else None
            if system_pkg is not None and version_satisfies(system_pkg.version, constraint):
                plan.satisfied[name] = system_pkg.name
                self.log.debug(f"{name} already installed on the system ({system_pkg.version})")
                return system_pkg.name

        try:
            records = self.sources.lookup(name)
        except NotFound:
            raise NotFound(name, required_by=dependent)
        unavailable = getattr(records, "unavailable", None)
        record = self.select_record(name, list(records), pinned=pins.get(name), unavailable=unavailable)
        self._check_version(name, record, constraints)

        # a split package or alias may lead to a record that is already in the graph
        existing = graph.get(record.name)
        if existing is not None:
            if existing.state == IN_PROGRESS:
                raise CyclicDependency(path[path.index(existing.name):] + [existing.name])
            return existing

        node = graph.add(record, explicit=dependent is None and plan.explicit)
        node.constraints.extend(constraints.get(name, []))
        node.state = IN_PROGRESS
        path.append(node.name)

        deps = [(d, False) for d in record.depends]
        if record.origin == ORIGIN_AUR:
            # build-only deps matter only when we build the recipe ourselves
            deps += [(d, True) for d in record.makedepends]

        for raw, build_only in deps:
            dep_name, dep_constraint = parse_dependency(raw)
            if record.satisfies_name(dep_name):
                continue
            child = self._visit(dep_name, dep_constraint, node.name, graph, plan, constraints, pins, path)
            if isinstance(child, DependencyNode):
                if child.index not in node.children:
                    node.children.append(child.index)
                resolved_name = child.name
            else:
                resolved_name = child
            target = node.build_dependencies if build_only else node.dependencies
            if resolved_name not in target:
                target.append(resolved_name)

        path.pop()
        node.state = RESOLVED
        plan.append(node)
        return node

    def _check_version(self, name: str, record: PackageRecord, constraints):
        if record.name != name:
            # constraints on a provides alias refer to the alias version, which records do not carry
            return
        entries = constraints.get(name, [])
        for _, c in entries:
            if not version_satisfies(record.version, c):
                raise VersionConflict(name, entries, available=record.version)
