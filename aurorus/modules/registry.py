# aurorus/modules/registry.py
"""
Installed-package registry: the durable state boundary of aurorus.

On-disk format (JSON):
{
  "<pkgname>": {
      "name": "<pkgname>",
      "version": "1.0-1",
      "origin": "aur" | "repo",
      "dependencies": ["dep1", "dep2"],      # runtime deps, as resolved
      "build_dependencies": ["cmake"],       # build-only deps, as resolved
      "provides": ["alias"],
      "explicit": true,
      "installed_at": "2025-09-19T..."
  },
  ...
}

Reads are free. Writes require the exclusive lock (see `exclusive()`): an in-process
lock plus a `<registry>.lck` file created with O_EXCL, so two aurorus processes
never interleave updates. The lock file holds the owner's PID; a lock whose owner
is gone (crashed run) is removed and taken over.
"""

from __future__ import annotations
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from aurorus.modules import logger as _logger
from aurorus.modules.config import config
from aurorus.modules.models import InstalledPackage
from aurorus.modules.versions import version_satisfies

DEFAULT_REGISTRY = "~/.local/share/aurorus/installed.json"


class RegistryError(Exception):
    pass


class RegistryLocked(RegistryError):
    def __init__(self, lock_path: Optional[str]):
        self.lock_path = lock_path
        where = f" ({lock_path})" if lock_path else ""
        super().__init__(f"Registry is locked by another operation{where}")


def lock_holder(path: str) -> Optional[int]:
    """PID written in a lock file; None while the holder has not written it yet."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return int(fh.read().strip())
    except (OSError, ValueError):
        return None


def process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    return True


class Registry:
    def __init__(self, path: Optional[str] = None, entries: Optional[Dict[str, InstalledPackage]] = None,
                 in_memory: bool = False):
        """
        path: JSON file; defaults to [paths] registry from the configuration.
        entries / in_memory: registry kept only in memory (tests, dry runs).
        """
        self.log = _logger.Logger("registry")
        self._mutex = threading.Lock()
        self._held = False
        self._lock_fd = None

        if in_memory or entries is not None:
            self.path = None
            self._db = dict(entries or {})
            return

        self.path = os.path.abspath(path) if path else config.getpath("paths", "registry", fallback=DEFAULT_REGISTRY)
        self._db = self._load()

    @property
    def lock_path(self) -> Optional[str]:
        return self.path + ".lck" if self.path else None

    # -------------------------
    # persistence
    # -------------------------
    def _load(self) -> Dict[str, InstalledPackage]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as e:
            raise RegistryError(f"Could not read registry {self.path}: {e}")
        return {name: InstalledPackage.from_dict(data) for name, data in raw.items()}

    def _save(self):
        if not self.path:
            return
        dirpath = os.path.dirname(self.path)
        os.makedirs(dirpath, exist_ok=True)
        data = {name: pkg.to_dict() for name, pkg in sorted(self._db.items())}
        fd, tmp = tempfile.mkstemp(prefix=".installed-", dir=dirpath)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        self.log.debug(f"Registry saved to {self.path}")

    # -------------------------
    # single writer
    # -------------------------
    @contextmanager
    def exclusive(self):
        """Holds the registry for writing until the block exits, success or failure."""
        if not self._mutex.acquire(blocking=False):
            raise RegistryLocked(self.lock_path)
        try:
            if self.lock_path:
                os.makedirs(os.path.dirname(self.lock_path), exist_ok=True)
                self._lock_fd = self._acquire_lock_file()
            try:
                if self._lock_fd is not None:
                    os.write(self._lock_fd, str(os.getpid()).encode())
                    # another process may have written since we loaded
                    self._db = self._load()
                self._held = True
                yield self
            finally:
                self._held = False
                if self._lock_fd is not None:
                    os.close(self._lock_fd)
                    self._lock_fd = None
                    os.remove(self.lock_path)
        finally:
            self._mutex.release()

    def _open_lock_file(self):
        return os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)

    def _acquire_lock_file(self):
        try:
            return self._open_lock_file()
        except FileExistsError:
            pass
        holder = lock_holder(self.lock_path)
        if holder is None or process_alive(holder):
            raise RegistryLocked(self.lock_path)
        self.log.warning(f"Removing stale registry lock of process {holder}")
        try:
            os.remove(self.lock_path)
        except FileNotFoundError:
            pass
        try:
            return self._open_lock_file()
        except FileExistsError:
            raise RegistryLocked(self.lock_path)

    def _require_lock(self):
        if not self._held:
            raise RegistryError("Registry writes need exclusive access (use Registry.exclusive())")

    # -------------------------
    # reads
    # -------------------------
    def get(self, name: str) -> Optional[InstalledPackage]:
        return self._db.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._db

    def __len__(self):
        return len(self._db)

    def names(self) -> List[str]:
        return sorted(self._db.keys())

    def packages(self) -> List[InstalledPackage]:
        return [self._db[n] for n in self.names()]

    def find_provider(self, name: str, constraint: Optional[str] = None) -> Optional[InstalledPackage]:
        """
        Installed package satisfying a dependency on `name` (by name or provides alias)
        whose version meets `constraint`.
        """
        pkg = self._db.get(name)
        if pkg is not None and version_satisfies(pkg.version, constraint):
            return pkg
        if constraint:
            # a provides alias carries no version of its own we can trust
            return None
        for other in self.packages():
            if name in other.provides:
                return other
        return None

    def dependents_of(self, name: str) -> List[str]:
        """Installed packages whose runtime dependency set includes `name`."""
        return sorted(other for other, pkg in self._db.items()
                      if other != name and name in pkg.dependencies)

    # -------------------------
    # writes
    # -------------------------
    def add(self, pkg: InstalledPackage):
        self._require_lock()
        previous = self._db.get(pkg.name)
        self._db[pkg.name] = pkg
        try:
            self._save()
        except OSError:
            # memory and disk must agree
            if previous is None:
                del self._db[pkg.name]
            else:
                self._db[pkg.name] = previous
            raise

    def remove(self, name: str) -> Optional[InstalledPackage]:
        self._require_lock()
        pkg = self._db.pop(name, None)
        if pkg is not None:
            try:
                self._save()
            except OSError:
                self._db[name] = pkg
                raise
        return pkg

    def update_versions(self, installed: Iterable[InstalledPackage]) -> int:
        """Refreshes the versions of known entries after pacman upgraded them. Returns the number changed."""
        self._require_lock()
        changed = 0
        for pkg in installed:
            entry = self._db.get(pkg.name)
            if entry is not None and entry.version != pkg.version:
                entry.version = pkg.version
                changed += 1
        if changed:
            self._save()
        return changed

    def merge_system(self, installed: Iterable[InstalledPackage]) -> int:
        """
        Adds packages installed outside aurorus (as reported by pacman -Qi) that the registry
        does not know yet, and drops entries pacman no longer reports. Returns the number of changes.
        """
        self._require_lock()
        seen = {}
        for pkg in installed:
            seen[pkg.name] = pkg
        changes = 0
        for name, pkg in seen.items():
            if name not in self._db:
                self._db[name] = pkg
                changes += 1
            elif self._db[name].version != pkg.version:
                self._db[name].version = pkg.version
                changes += 1
        for name in list(self._db):
            if name not in seen:
                del self._db[name]
                changes += 1
        if changes:
            self._save()
            self.log.info(f"Registry synchronized with system package database ({changes} changes)")
        return changes
