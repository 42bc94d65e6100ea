"""Project logger.

Each component owns a ``Logger(name)``. Messages are echoed to stderr through
rich and appended to the log file. Package transactions (installed, removed,
failed steps) also go to the history file through :meth:`Logger.record`,
one line per package and regardless of the level threshold, so the history
reads like a small pacman.log of what aurorus did.
"""

import datetime
import json
import os
import threading

from rich.console import Console

from aurorus.modules.config import config

DEFAULT_LOG_FILE = "~/.cache/aurorus/aurorus.log"
DEFAULT_HISTORY_FILE = "~/.cache/aurorus/history.log"

STYLES = {
    "DEBUG": "dim",
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "bold red",
}

_stderr = Console(stderr=True, highlight=False, emoji=False, soft_wrap=True)
_write_lock = threading.Lock()


def rotate(path, max_bytes):
    """Move `path` aside to `path.1` once it is larger than `max_bytes`."""
    if max_bytes <= 0:
        return
    try:
        if os.path.getsize(path) > max_bytes:
            os.replace(path, path + ".1")
    except FileNotFoundError:
        pass


class Logger:
    LEVELS = {
        "debug": 10,
        "info": 20,
        "success": 25,
        "warning": 30,
        "error": 40,
    }

    def __init__(self, name="aurorus"):
        self.name = name
        self.log_file = config.getpath("logging", "log_file", fallback=DEFAULT_LOG_FILE)
        self.history_file = config.getpath("logging", "history_file", fallback=DEFAULT_HISTORY_FILE)
        self.log_to_file = config.getboolean("logging", "log_to_file", fallback=True)
        self.log_to_console = config.getboolean("logging", "log_to_console", fallback=True)
        self.color_output = config.getboolean("logging", "color_output", fallback=True)
        self.use_utc = config.getboolean("logging", "timestamp_utc", fallback=False)
        self.log_format = config.getchoice("logging", "log_format", ("text", "json"), "text")
        self.max_log_size_kb = config.getint("logging", "max_log_size_kb", fallback=1024)
        level = config.getchoice("logging", "level", self.LEVELS, "info")
        self.min_level = self.LEVELS[level]

    def _now(self):
        tz = datetime.timezone.utc if self.use_utc else None
        return datetime.datetime.now(tz).strftime("%Y-%m-%d %H:%M:%S")

    def _line(self, fields, text):
        if self.log_format == "json":
            return json.dumps(dict(timestamp=self._now(), logger=self.name, **fields))
        return f"[{self._now()}] [{self.name}] {text}"

    def _append(self, path, line):
        if not self.log_to_file:
            return
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            rotate(path, self.max_log_size_kb * 1024)
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as e:
            _stderr.print(f"aurorus: cannot write {path}: {e}", markup=False)

    def log(self, level, message):
        level = level.upper()
        if self.LEVELS.get(level.lower(), 0) < self.min_level:
            return
        line = self._line({"level": level, "message": message}, f"[{level}] {message}")
        with _write_lock:
            if self.log_to_console:
                style = STYLES.get(level) if self.color_output else None
                _stderr.print(line, style=style, markup=False)
            self._append(self.log_file, line)

    def record(self, action, package, version=None, origin=None, detail=None):
        """Append one transaction line (`installed`, `removed`, `failed`) to the history file."""
        text = f"{action} {package}"
        if version:
            text += f" ({version})"
        if origin:
            text += f" [{origin}]"
        if detail:
            text += f": {detail}"
        fields = {"action": action, "package": package, "version": version, "origin": origin, "detail": detail}
        with _write_lock:
            self._append(self.history_file, self._line(fields, text))

    def debug(self, message):
        self.log("DEBUG", message)

    def info(self, message):
        self.log("INFO", message)

    def success(self, message):
        self.log("SUCCESS", message)

    def warning(self, message):
        self.log("WARNING", message)

    def error(self, message):
        self.log("ERROR", message)
