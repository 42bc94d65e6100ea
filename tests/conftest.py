"""Shared fixtures: quiet configuration, in-memory registry and fakes for the external tools."""

import os
import tempfile

# the configuration singleton is read at import time
_CONF_DIR = tempfile.mkdtemp(prefix="aurorus-tests-")
with open(os.path.join(_CONF_DIR, "aurorus.conf"), "w", encoding="utf-8") as _fh:
    _fh.write(
        "[logging]\n"
        "log_to_file = false\n"
        "log_to_console = false\n"
        "\n"
        "[paths]\n"
        f"registry = {_CONF_DIR}/installed.json\n"
        f"build_dir = {_CONF_DIR}/build\n"
        f"pins_file = {_CONF_DIR}/pins.yaml\n"
    )
os.environ["AURORUS_CONFIG"] = os.path.join(_CONF_DIR, "aurorus.conf")

from contextlib import contextmanager  # noqa: E402

import pytest  # noqa: E402

from aurorus.modules.build import BuildError  # noqa: E402
from aurorus.modules.models import NotFound  # noqa: E402
from aurorus.modules.registry import Registry  # noqa: E402
from aurorus.modules.runner import CommandResult  # noqa: E402


class FakeSourceClient:
    """name -> list of PackageRecord; unknown names raise NotFound like the real client."""

    def __init__(self, records=()):
        self.records = {}
        self.lookups = []
        for r in records:
            self.add(r)

    def add(self, record):
        self.records.setdefault(record.name, []).append(record)

    def lookup(self, name):
        self.lookups.append(name)
        if name not in self.records:
            raise NotFound(name)
        return list(self.records[name])


class FakePacman:
    """Records actions. `system` is what pacman -Qi knows, `foreign` what pacman -Qm lists."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []
        self.system = {}
        self.foreign = {}

    def _result(self, action, target, asdeps=None):
        self.calls.append((action, target, asdeps))
        name = os.path.basename(target).split("-")[0] if action == "install_file" else target
        if name in self.fail:
            return CommandResult(["pacman", action, target], 1, "", f"error: failed to commit transaction ({name})", 0)
        return CommandResult(["pacman", action, target], 0, "", "", 0)

    def install(self, name, asdeps=False):
        return self._result("install", name, asdeps)

    def install_file(self, path, asdeps=False):
        return self._result("install_file", path, asdeps)

    def remove(self, name):
        return self._result("remove", name)

    def upgrade_system(self):
        return self._result("upgrade_system", "*")

    def query_package(self, name):
        return self.system.get(name)

    def query_installed(self):
        return list(self.system.values())

    def foreign_packages(self):
        return dict(self.foreign)


class FakeBuilder:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.opened = []
        self.closed = []
        self.built = []

    @contextmanager
    def workspace(self, record):
        path = f"/tmp/fake-build/{record.name}"
        self.opened.append(record.name)
        try:
            yield path
        finally:
            self.closed.append(record.name)

    def build(self, record, workspace):
        if record.name in self.fail:
            raise BuildError(record.name, "makepkg exited with status 4")
        self.built.append(record.name)
        return f"{workspace}/{record.name}-{record.version}-x86_64.pkg.tar.zst"


@pytest.fixture
def sources():
    return FakeSourceClient()


@pytest.fixture
def registry():
    return Registry(in_memory=True)


@pytest.fixture
def pacman():
    return FakePacman()


@pytest.fixture
def builder():
    return FakeBuilder()
