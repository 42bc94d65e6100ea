# aurorus/modules/upgrade.py
"""
Update check for packages built from the AUR.

Candidates are the registry entries with AUR origin plus whatever `pacman -Qm` reports
(foreign packages, including the ones built outside aurorus); repository packages are
left to `pacman -Syu`. The RPC info endpoint accepts 50 names per request, so the
names are split into chunks fetched in parallel.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, NamedTuple, Optional

from aurorus.modules import logger as _logger
from aurorus.modules.aur import RPC_CHUNK_SIZE, AurClient
from aurorus.modules.models import ORIGIN_AUR
from aurorus.modules.versions import compare_versions

DEFAULT_WORKERS = 4


class AvailableUpdate(NamedTuple):
    name: str
    installed: str
    available: str


class UpdateChecker:
    def __init__(self, registry, aur: Optional[AurClient] = None, pacman=None,
                 workers: int = DEFAULT_WORKERS, logger: Optional[_logger.Logger] = None):
        """
        pacman: object with foreign_packages() -> {name: version}; None checks the registry only
        """
        self.registry = registry
        self.aur = aur or AurClient()
        self.pacman = pacman
        self.workers = workers
        self.log = logger or _logger.Logger("upgrade")

    def candidates(self) -> Dict[str, str]:
        """name -> installed version of every package that may come from the AUR."""
        found = {pkg.name: pkg.version for pkg in self.registry.packages() if pkg.origin == ORIGIN_AUR}
        if self.pacman is not None:
            # pacman knows the version actually on disk
            found.update(self.pacman.foreign_packages())
        return dict(sorted(found.items()))

    def check(self) -> List[AvailableUpdate]:
        installed = self.candidates()
        names = list(installed)
        if not names:
            self.log.info("No AUR packages installed")
            return []
        chunks = [names[i:i + RPC_CHUNK_SIZE] for i in range(0, len(names), RPC_CHUNK_SIZE)]
        self.log.info(f"Checking {len(names)} AUR packages for updates")

        latest = {}
        with ThreadPoolExecutor(max_workers=self.workers) as ex:
            # map keeps chunk order, so the result is the same whatever finishes first
            for records in ex.map(self.aur.info_chunk, chunks):
                for record in records:
                    latest[record.name] = record.version

        updates = []
        for name in names:
            available = latest.get(name)
            if available is None:
                if name in self.registry:
                    self.log.warning(f"{name} is no longer in the AUR")
                else:
                    self.log.debug(f"{name} is a local package, not in the AUR")
                continue
            if compare_versions(available, installed[name]) > 0:
                updates.append(AvailableUpdate(name, installed[name], available))
        self.log.info(f"{len(updates)} update(s) available")
        return updates
