# aurorus/modules/build.py
"""
AUR build action.

Pipeline for one recipe:
 - scoped workspace under the build dir (always removed afterwards, success or failure)
 - shallow git clone of https://aur.archlinux.org/<pkgbase>.git
 - makepkg -f --noconfirm
 - makepkg --packagelist -> the artifact produced for the requested pkgname

The artifact only lives as long as the workspace: install it inside the `workspace()` block.
"""

from __future__ import annotations
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Iterator, List, Optional

from git import GitCommandError, Repo

from aurorus.modules import logger as _logger
from aurorus.modules.config import config
from aurorus.modules.models import PackageRecord
from aurorus.modules.runner import CommandError, CommandRunner

DEFAULT_CLONE_URL = "https://aur.archlinux.org/{name}.git"
DEFAULT_BUILD_DIR = "~/.cache/aurorus/build"


class BuildError(Exception):
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Build of {name} failed: {reason}")


def select_artifact(paths: List[str], name: str) -> Optional[str]:
    """
    Picks the package file of `name` among the files of a (possibly split) pkgbase.
    File names look like <name>-<pkgver>-<pkgrel>-<arch>.pkg.tar.zst.
    """
    prefix = name + "-"
    for path in paths:
        base = os.path.basename(path)
        rest = base[len(prefix):]
        if base.startswith(prefix) and rest[:1].isdigit() and ".pkg.tar" in base:
            return path
    return None


class AurBuilder:
    def __init__(self,
                 runner: Optional[CommandRunner] = None,
                 build_dir: Optional[str] = None,
                 clone_url: Optional[str] = None,
                 makepkg: Optional[str] = None):
        self.runner = runner or CommandRunner(use_sudo=False)
        self.build_dir = os.path.abspath(build_dir) if build_dir else \
            config.getpath("paths", "build_dir", fallback=DEFAULT_BUILD_DIR)
        self.clone_url = clone_url or config.get("aur", "clone_url", fallback=DEFAULT_CLONE_URL)
        self.makepkg = makepkg or config.get("pacman", "makepkg", fallback="makepkg")
        self.log = _logger.Logger("build")

    # ---------------------------
    # workspace
    # ---------------------------
    @contextmanager
    def workspace(self, record: PackageRecord) -> Iterator[str]:
        os.makedirs(self.build_dir, exist_ok=True)
        path = tempfile.mkdtemp(prefix=f"{record.name}-", dir=self.build_dir)
        self.log.debug(f"Workspace for {record.name}: {path}")
        try:
            yield path
        finally:
            self._cleanup(path)

    def _cleanup(self, path: str):
        try:
            shutil.rmtree(path)
            self.log.debug(f"Removed workspace {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            self.log.error(f"Could not remove workspace {path}: {e}")

    # ---------------------------
    # pipeline
    # ---------------------------
    def clone(self, record: PackageRecord, workspace: str) -> str:
        url = self.clone_url.format(name=record.clone_name)
        dest = os.path.join(workspace, record.clone_name)
        self.log.info(f"Cloning {url}")
        try:
            Repo.clone_from(url, dest, depth=1)
        except GitCommandError as e:
            raise BuildError(record.name, f"git clone {url} failed: {e.stderr.strip() if e.stderr else e}")
        if not os.path.exists(os.path.join(dest, "PKGBUILD")):
            raise BuildError(record.name, f"no PKGBUILD in {url}")
        return dest

    def build(self, record: PackageRecord, workspace: str) -> str:
        """Builds the recipe inside `workspace` and returns the artifact path."""
        srcdir = self.clone(record, workspace)
        self.log.info(f"Building {record.name} {record.version}")
        try:
            res = self.runner.run([self.makepkg, "-f", "--noconfirm"], cwd=srcdir)
        except CommandError as e:
            raise BuildError(record.name, str(e))
        if not res.ok():
            raise BuildError(record.name, res.reason())

        try:
            listing = self.runner.run([self.makepkg, "--packagelist"], cwd=srcdir)
        except CommandError as e:
            raise BuildError(record.name, str(e))
        paths = [line.strip() for line in listing.stdout.splitlines() if line.strip()]
        artifact = select_artifact(paths, record.name)
        if artifact is None or (not self.runner.dry_run and not os.path.exists(artifact)):
            raise BuildError(record.name, f"makepkg produced no package file for {record.name}")
        self.log.success(f"Built {os.path.basename(artifact)}")
        return artifact
