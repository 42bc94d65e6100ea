# aurorus/modules/sources.py
"""
Source client: one lookup across both origins.

Both origins are queried in parallel and both must answer (or definitively fail)
before lookup returns. An origin failure is only fatal when the other origin has
nothing to offer; otherwise the records are returned with the failure noted in
`LookupResult.unavailable`.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from aurorus.modules import logger as _logger
from aurorus.modules.aur import AurClient
from aurorus.modules.models import ORIGIN_AUR, ORIGIN_REPO, NotFound, PackageRecord, SourceUnavailable
from aurorus.modules.pacman import PacmanClient


class LookupResult(list):
    """List of PackageRecord plus the origins that could not be queried."""

    def __init__(self, records=(), unavailable: Optional[Dict[str, str]] = None):
        super().__init__(records)
        self.unavailable: Dict[str, str] = dict(unavailable or {})

    @property
    def partial(self) -> bool:
        return bool(self.unavailable)

    def by_origin(self, origin: str) -> List[PackageRecord]:
        return [r for r in self if r.origin == origin]


class SourceClient:
    def __init__(self, repo=None, aur=None, logger: Optional[_logger.Logger] = None):
        self.repo = repo if repo is not None else PacmanClient()
        self.aur = aur if aur is not None else AurClient()
        self.log = logger or _logger.Logger("sources")

    def _query_all(self, method: str, arg: str):
        clients = [(ORIGIN_REPO, self.repo), (ORIGIN_AUR, self.aur)]
        results: Dict[str, List[PackageRecord]] = {}
        failures: Dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=len(clients)) as ex:
            futures = {origin: ex.submit(getattr(client, method), arg) for origin, client in clients}
            # keep a fixed origin order so merged results are stable between runs
            for origin, _ in clients:
                try:
                    results[origin] = list(futures[origin].result())
                except SourceUnavailable as e:
                    failures[origin] = e.reason
                    self.log.warning(f"{origin} origin unavailable for '{arg}': {e.reason}")
        records = results.get(ORIGIN_REPO, []) + results.get(ORIGIN_AUR, [])
        return records, failures

    def lookup(self, name: str) -> LookupResult:
        records, failures = self._query_all("lookup", name)
        if not records:
            if failures:
                origin, reason = sorted(failures.items())[0]
                raise SourceUnavailable(origin, reason, name=name)
            raise NotFound(name)
        self.log.debug(f"lookup {name}: {[(r.origin, r.version) for r in records]}")
        return LookupResult(records, failures)

    def search(self, term: str) -> LookupResult:
        records, failures = self._query_all("search", term)
        if not records and set(failures) == {ORIGIN_REPO, ORIGIN_AUR}:
            origin, reason = sorted(failures.items())[0]
            raise SourceUnavailable(origin, reason)
        return LookupResult(records, failures)
