# aurorus/modules/aur.py
"""
AUR origin: build recipes published on aur.archlinux.org.

 - lookup(name): fetches the recipe's .SRCINFO and normalizes it into a PackageRecord
 - search(term): RPC search, sorted by votes
 - info_chunk(names): RPC info for up to 50 names at once (the RPC limit; callers split)

.SRCINFO layout:

    pkgbase = foo
        pkgver = 1.2
        pkgrel = 1
        depends = bar>=2.0
        makedepends = cmake

    pkgname = foo
        depends = baz

The pkgbase section holds defaults; each pkgname section may override any field.
"""

from __future__ import annotations
from typing import Dict, List, Optional

import requests

from aurorus.modules import logger as _logger
from aurorus.modules.config import config
from aurorus.modules.models import ORIGIN_AUR, PackageRecord, SourceUnavailable

DEFAULT_RPC_URL = "https://aur.archlinux.org/rpc/"
DEFAULT_SRCINFO_URL = "https://aur.archlinux.org/cgit/aur.git/plain/.SRCINFO?h={name}"
RPC_CHUNK_SIZE = 50

LIST_FIELDS = ("depends", "makedepends", "checkdepends", "provides", "conflicts", "arch")


def parse_srcinfo(text: str) -> Dict[str, Dict[str, object]]:
    """
    Parses .SRCINFO text into {pkgname: fields}, with pkgbase defaults already applied.
    Architecture-specific keys (depends_x86_64) are folded into the generic key.
    """
    base: Dict[str, object] = {}
    packages: Dict[str, Dict[str, object]] = {}
    current = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if key == "pkgbase":
            base = {"pkgbase": value}
            current = base
            continue
        if key == "pkgname":
            current = {"pkgname": value}
            packages[value] = current
            continue
        if current is None:
            continue
        for field in LIST_FIELDS:
            if key == field or key.startswith(field + "_"):
                key = field
                break
        if key in LIST_FIELDS:
            lst = current.setdefault(key, [])
            lst.append(value)
        else:
            current[key] = value

    result = {}
    for name, fields in packages.items():
        merged = dict(base)
        merged.update(fields)
        result[name] = merged
    return result


def srcinfo_version(fields: Dict[str, object]) -> str:
    version = f"{fields.get('pkgver', '0')}-{fields.get('pkgrel', '1')}"
    epoch = fields.get("epoch")
    if epoch and str(epoch) != "0":
        version = f"{epoch}:{version}"
    return version


def record_from_srcinfo(fields: Dict[str, object]) -> PackageRecord:
    return PackageRecord.create(
        name=fields["pkgname"],
        version=srcinfo_version(fields),
        origin=ORIGIN_AUR,
        depends=fields.get("depends", []),
        # check dependencies are only needed while building
        makedepends=list(fields.get("makedepends", [])) + list(fields.get("checkdepends", [])),
        provides=fields.get("provides", []),
        description=fields.get("pkgdesc", "") or "",
        repository="aur",
        pkgbase=fields.get("pkgbase") or fields["pkgname"],
    )


def record_from_rpc(entry: Dict[str, object]) -> PackageRecord:
    return PackageRecord.create(
        name=entry["Name"],
        version=entry.get("Version", ""),
        origin=ORIGIN_AUR,
        depends=entry.get("Depends") or [],
        makedepends=list(entry.get("MakeDepends") or []) + list(entry.get("CheckDepends") or []),
        provides=entry.get("Provides") or [],
        description=entry.get("Description") or "",
        repository="aur",
        votes=entry.get("NumVotes") or 0,
        pkgbase=entry.get("PackageBase") or entry["Name"],
    )


class AurClient:
    origin = ORIGIN_AUR

    def __init__(self,
                 rpc_url: Optional[str] = None,
                 srcinfo_url: Optional[str] = None,
                 timeout: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.rpc_url = rpc_url or config.get("aur", "rpc_url", fallback=DEFAULT_RPC_URL)
        self.srcinfo_url = srcinfo_url or config.get("aur", "srcinfo_url", fallback=DEFAULT_SRCINFO_URL)
        self.timeout = timeout or config.getint("aur", "timeout", fallback=20)
        self.session = session or requests.Session()
        self.log = _logger.Logger("aur")

    def _get(self, url: str, name: Optional[str] = None, **kwargs) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise SourceUnavailable(self.origin, str(e), name=name)

    def _rpc(self, params, name: Optional[str] = None) -> List[Dict[str, object]]:
        resp = self._get(self.rpc_url, name=name, params=params)
        if resp.status_code != 200:
            raise SourceUnavailable(self.origin, f"HTTP {resp.status_code}", name=name)
        try:
            data = resp.json()
        except ValueError as e:
            raise SourceUnavailable(self.origin, f"invalid RPC response: {e}", name=name)
        if data.get("type") == "error":
            raise SourceUnavailable(self.origin, data.get("error") or "RPC error", name=name)
        return data.get("results") or []

    def fetch_srcinfo(self, name: str) -> Optional[str]:
        """Raw .SRCINFO text, or None when the AUR has no recipe under that name."""
        resp = self._get(self.srcinfo_url.format(name=name), name=name)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise SourceUnavailable(self.origin, f"HTTP {resp.status_code}", name=name)
        text = resp.text
        # cgit answers unknown heads with an empty page instead of a 404
        if not text.strip():
            return None
        return text

    def lookup(self, name: str) -> List[PackageRecord]:
        text = self.fetch_srcinfo(name)
        if text is None:
            self.log.debug(f"No AUR recipe for {name}")
            return []
        packages = parse_srcinfo(text)
        if name in packages:
            return [record_from_srcinfo(packages[name])]
        # split packages: asked by pkgbase, pkgname differs
        return [record_from_srcinfo(fields) for _, fields in sorted(packages.items())]

    def search(self, term: str) -> List[PackageRecord]:
        results = self._rpc({"v": 5, "type": "search", "arg": term})
        records = [record_from_rpc(r) for r in results]
        records.sort(key=lambda r: (-(r.votes or 0), r.name))
        return records

    def info_chunk(self, names: List[str]) -> List[PackageRecord]:
        results = self._rpc({"v": 5, "type": "info", "arg[]": list(names)})
        return [record_from_rpc(r) for r in results]
