# aurorus/modules/models.py
"""
Shared records passed between the source client, resolver, orchestrator and registry.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, NamedTuple, Optional, Tuple

from aurorus.modules.versions import parse_dependency

ORIGIN_AUR = "aur"
ORIGIN_REPO = "repo"
ORIGINS = (ORIGIN_REPO, ORIGIN_AUR)

# step outcomes of an install/removal run
INSTALLED = "installed"
SKIPPED = "skipped"
FAILED = "failed"
REMOVED = "removed"
NOT_ATTEMPTED = "not-attempted"


class PackageRecord(NamedTuple):
    """One candidate package from one origin. Read-only once fetched."""
    name: str
    version: str
    origin: str
    depends: Tuple[str, ...] = ()
    makedepends: Tuple[str, ...] = ()
    provides: FrozenSet[str] = frozenset()
    description: str = ""
    repository: str = ""
    votes: Optional[int] = None
    pkgbase: Optional[str] = None

    @classmethod
    def create(cls, name, version, origin, depends=(), makedepends=(), provides=(), **extra):
        # provides may carry a version ("libfoo.so=1-64"); only the alias name matters for matching
        return cls(
            name=name,
            version=str(version),
            origin=origin,
            depends=tuple(d.strip() for d in depends if d and d.strip()),
            makedepends=tuple(d.strip() for d in makedepends if d and d.strip()),
            provides=frozenset(parse_dependency(p)[0] for p in provides if p and p.strip()),
            **extra,
        )

    @property
    def clone_name(self) -> str:
        return self.pkgbase or self.name

    def satisfies_name(self, name: str) -> bool:
        return name == self.name or name in self.provides


class InstalledPackage:
    """Registry entry for one installed package."""

    def __init__(self, name: str, version: str, origin: str,
                 dependencies: Optional[Iterable[str]] = None,
                 build_dependencies: Optional[Iterable[str]] = None,
                 provides: Optional[Iterable[str]] = None,
                 explicit: bool = False,
                 installed_at: Optional[str] = None):
        self.name = name
        self.version = version
        self.origin = origin
        self.dependencies = set(dependencies or ())
        self.build_dependencies = set(build_dependencies or ())
        self.provides = set(provides or ())
        self.explicit = explicit
        self.installed_at = installed_at or datetime.now(timezone.utc).isoformat()

    def satisfies_name(self, name: str) -> bool:
        return name == self.name or name in self.provides

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "origin": self.origin,
            "dependencies": sorted(self.dependencies),
            "build_dependencies": sorted(self.build_dependencies),
            "provides": sorted(self.provides),
            "explicit": self.explicit,
            "installed_at": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledPackage":
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            origin=data.get("origin", ORIGIN_REPO),
            dependencies=data.get("dependencies", []),
            build_dependencies=data.get("build_dependencies", []),
            provides=data.get("provides", []),
            explicit=bool(data.get("explicit", False)),
            installed_at=data.get("installed_at"),
        )

    def __repr__(self):
        return f"InstalledPackage({self.name!r}, {self.version!r}, origin={self.origin!r}, explicit={self.explicit})"


class SourceError(Exception):
    pass


class NotFound(SourceError):
    def __init__(self, name: str, origin: Optional[str] = None, required_by: Optional[str] = None):
        self.name = name
        self.origin = origin
        self.required_by = required_by
        where = f" in {origin}" if origin else ""
        needed = f" (required by {required_by})" if required_by else ""
        super().__init__(f"Package not found{where}: {name}{needed}")


class SourceUnavailable(SourceError):
    def __init__(self, origin: str, reason: str, name: Optional[str] = None):
        self.origin = origin
        self.reason = reason
        self.name = name
        about = f" while looking up {name}" if name else ""
        super().__init__(f"Origin {origin} unavailable{about}: {reason}")
