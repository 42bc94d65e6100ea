# aurorus/modules/runner.py
import os
import signal
import subprocess
import shlex
import time
from contextlib import contextmanager
from typing import Optional

from aurorus.modules import logger

_shield_depth = 0


@contextmanager
def shield_interrupts():
    """
    Commands started inside the block ignore SIGINT, so Ctrl-C on the terminal reaches
    only aurorus, which stops between steps instead of killing pacman or makepkg mid-way.
    """
    global _shield_depth
    _shield_depth += 1
    try:
        yield
    finally:
        _shield_depth -= 1


def interrupts_shielded() -> bool:
    return _shield_depth > 0


def _ignore_sigint():
    signal.signal(signal.SIGINT, signal.SIG_IGN)


class CommandError(Exception):
    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result


class CommandResult:
    """Outcome of one external command"""

    def __init__(self, command, returncode, stdout, stderr, duration):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.duration = duration

    def ok(self):
        return self.returncode == 0

    def reason(self) -> str:
        """Short, user-facing failure reason taken from the tool's own output."""
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        if not text:
            return f"exit status {self.returncode}"
        return text.splitlines()[-1]


class CommandRunner:
    """
    Runs external tools (pacman, makepkg) as blocking calls.

    - privileged commands are prefixed with `sudo` when configured
    - dry-run logs the command and returns a successful empty result
    - inside `shield_interrupts()` children ignore SIGINT
    """

    def __init__(self, dry_run: bool = False, use_sudo: bool = True):
        self.dry_run = dry_run
        self.use_sudo = use_sudo
        self.log = logger.Logger("runner")

    def run(self, command, cwd: Optional[str] = None, env: Optional[dict] = None,
            privileged: bool = False) -> CommandResult:
        """Executes a command and waits for it. Raises CommandError when it cannot be started."""
        if isinstance(command, str):
            command = shlex.split(command)
        command = list(command)
        if privileged and self.use_sudo and os.geteuid() != 0:
            command = ["sudo"] + command

        self.log.debug(f"Running: {' '.join(command)} (cwd={cwd})")

        if self.dry_run:
            self.log.info(f"[DRY-RUN] {' '.join(command)}")
            return CommandResult(command, 0, "", "", 0)

        start = time.time()
        try:
            proc = subprocess.run(
                command,
                cwd=cwd,
                env=env or os.environ.copy(),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                preexec_fn=_ignore_sigint if interrupts_shielded() else None,
            )
        except OSError as e:
            result = CommandResult(command, 127, "", str(e), time.time() - start)
            raise CommandError(f"Could not execute {command[0]}: {e}", result)

        result = CommandResult(command, proc.returncode, proc.stdout or "", proc.stderr or "",
                               time.time() - start)
        if result.returncode != 0:
            self.log.debug(f"Command {' '.join(command)} exited with {result.returncode}")
        return result

