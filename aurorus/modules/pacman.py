# aurorus/modules/pacman.py
"""
Binary repository origin, driven through pacman.

Metadata queries (no privileges):
  pacman -Si <name>   -> candidate record from the sync databases
  pacman -Ss <term>   -> search
  pacman -Qi          -> everything installed on the system
  pacman -Qi <name>   -> one installed package, if present
  pacman -Qm          -> installed packages no sync database knows (AUR builds)

Mutating actions (run privileged, see CommandRunner):
  pacman -S  --noconfirm --needed [--asdeps] <name>
  pacman -U  --noconfirm [--asdeps] <artifact>
  pacman -R  --noconfirm <name>
  pacman -Syu --noconfirm
"""

from __future__ import annotations
import re
from typing import Dict, List, Optional

from aurorus.modules import logger as _logger
from aurorus.modules.config import config
from aurorus.modules.models import (
    ORIGIN_REPO,
    InstalledPackage,
    PackageRecord,
    SourceUnavailable,
)
from aurorus.modules.runner import CommandError, CommandResult, CommandRunner
from aurorus.modules.versions import parse_dependency

LIST_KEYS = ("Depends On", "Provides", "Optional Deps", "Required By", "Conflicts With", "Replaces", "Groups")

_SEARCH_HEAD_RE = re.compile(r"^(?P<repo>[^/\s]+)/(?P<name>\S+)\s+(?P<version>\S+)")


def parse_info_output(text: str) -> List[Dict[str, object]]:
    """
    Parses `pacman -Si` / `pacman -Qi` output into one dict per package block.
    List fields become lists; the literal value "None" becomes an empty list.
    """
    blocks: List[Dict[str, object]] = []
    current: Dict[str, object] = {}
    last_key = None

    for line in (text or "").splitlines():
        if not line.strip():
            if current:
                blocks.append(current)
            current = {}
            last_key = None
            continue
        if line[0].isspace() and last_key:
            # wrapped continuation of the previous field
            if last_key == "Optional Deps":
                current[last_key].append(line.strip())
            elif last_key in LIST_KEYS:
                current[last_key].extend(line.split())
            else:
                current[last_key] = f"{current[last_key]} {line.strip()}"
            continue
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip()
        value = value.strip()
        if key in LIST_KEYS:
            if key == "Optional Deps":
                current[key] = [] if value == "None" else [value]
            else:
                current[key] = [] if value == "None" else value.split()
        else:
            current[key] = value
        last_key = key

    if current:
        blocks.append(current)
    return blocks


def record_from_info(block: Dict[str, object]) -> PackageRecord:
    return PackageRecord.create(
        name=block["Name"],
        version=block.get("Version", ""),
        origin=ORIGIN_REPO,
        depends=block.get("Depends On", []),
        provides=block.get("Provides", []),
        description=block.get("Description", "") or "",
        repository=block.get("Repository", "") or "",
    )


def installed_from_info(block: Dict[str, object]) -> InstalledPackage:
    reason = str(block.get("Install Reason", ""))
    return InstalledPackage(
        name=block["Name"],
        version=block.get("Version", ""),
        origin=ORIGIN_REPO,
        dependencies=[parse_dependency(d)[0] for d in block.get("Depends On", [])],
        provides=[parse_dependency(p)[0] for p in block.get("Provides", [])],
        explicit=reason.startswith("Explicitly"),
    )


def parse_search_output(text: str) -> List[PackageRecord]:
    records = []
    lines = (text or "").splitlines()
    i = 0
    while i < len(lines):
        m = _SEARCH_HEAD_RE.match(lines[i])
        if not m:
            i += 1
            continue
        description = ""
        if i + 1 < len(lines) and lines[i + 1][:1].isspace():
            description = lines[i + 1].strip()
            i += 1
        records.append(PackageRecord.create(
            name=m.group("name"),
            version=m.group("version"),
            origin=ORIGIN_REPO,
            description=description,
            repository=m.group("repo"),
        ))
        i += 1
    return records


class PacmanClient:
    origin = ORIGIN_REPO

    def __init__(self, runner: Optional[CommandRunner] = None, pacman: Optional[str] = None):
        self.runner = runner or CommandRunner(use_sudo=config.getboolean("pacman", "use_sudo", fallback=True))
        self.pacman = pacman or config.get("pacman", "pacman", fallback="pacman")
        self.log = _logger.Logger("pacman")

    def _query(self, args: List[str], name: Optional[str] = None) -> CommandResult:
        try:
            return self.runner.run([self.pacman] + args)
        except CommandError as e:
            raise SourceUnavailable(self.origin, str(e), name=name)

    # -------------------------
    # metadata
    # -------------------------
    def lookup(self, name: str) -> List[PackageRecord]:
        res = self._query(["-Si", name], name=name)
        if not res.ok():
            if "was not found" in (res.stderr or ""):
                return []
            raise SourceUnavailable(self.origin, res.reason(), name=name)
        # the same name may exist in several repositories; pacman lists them in priority order
        blocks = parse_info_output(res.stdout)
        return [record_from_info(b) for b in blocks[:1] if b.get("Name")]

    def search(self, term: str) -> List[PackageRecord]:
        res = self._query(["-Ss", term])
        # pacman exits with 1 when nothing matches
        if not res.ok():
            if res.returncode == 1 and not (res.stderr or "").strip():
                return []
            raise SourceUnavailable(self.origin, res.reason())
        return parse_search_output(res.stdout)

    def query_installed(self) -> List[InstalledPackage]:
        res = self._query(["-Qi"])
        if not res.ok():
            raise SourceUnavailable(self.origin, res.reason())
        return [installed_from_info(b) for b in parse_info_output(res.stdout) if b.get("Name")]

    def query_package(self, name: str) -> Optional[InstalledPackage]:
        """The installed package called `name`, or None when pacman does not have it."""
        res = self._query(["-Qi", name], name=name)
        if not res.ok():
            if "was not found" in (res.stderr or ""):
                return None
            raise SourceUnavailable(self.origin, res.reason(), name=name)
        blocks = [b for b in parse_info_output(res.stdout) if b.get("Name")]
        return installed_from_info(blocks[0]) if blocks else None

    def foreign_packages(self) -> Dict[str, str]:
        """name -> version of installed packages missing from every sync database."""
        res = self._query(["-Qm"])
        # exit status 1 with no output: nothing foreign installed
        if not res.ok():
            if res.returncode == 1 and not (res.stderr or "").strip():
                return {}
            raise SourceUnavailable(self.origin, res.reason())
        foreign = {}
        for line in res.stdout.splitlines():
            parts = line.split()
            if len(parts) == 2:
                foreign[parts[0]] = parts[1]
        return foreign

    # -------------------------
    # actions
    # -------------------------
    def install(self, name: str, asdeps: bool = False) -> CommandResult:
        cmd = [self.pacman, "-S", "--noconfirm", "--needed", "--asdeps" if asdeps else "--asexplicit", name]
        return self.runner.run(cmd, privileged=True)

    def install_file(self, path: str, asdeps: bool = False) -> CommandResult:
        cmd = [self.pacman, "-U", "--noconfirm", "--asdeps" if asdeps else "--asexplicit", path]
        return self.runner.run(cmd, privileged=True)

    def remove(self, name: str) -> CommandResult:
        return self.runner.run([self.pacman, "-R", "--noconfirm", name], privileged=True)

    def upgrade_system(self) -> CommandResult:
        self.log.info("Upgrading repository packages")
        return self.runner.run([self.pacman, "-Syu", "--noconfirm"], privileged=True)
