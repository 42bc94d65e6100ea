"""Settings loader.

aurorus reads one INI file: the first that exists of `$AURORUS_CONFIG`,
`/etc/aurorus/aurorus.conf` and `~/.config/aurorus/aurorus.conf`. Without a
file every option keeps the fallback its caller passes.
"""

import configparser
import os

SYSTEM_CONFIG = "/etc/aurorus/aurorus.conf"
USER_CONFIG = "~/.config/aurorus/aurorus.conf"


def default_locations():
    env = os.environ.get("AURORUS_CONFIG")
    return ([env] if env else []) + [SYSTEM_CONFIG, os.path.expanduser(USER_CONFIG)]


class AurorusConfig:
    def __init__(self, locations=None):
        self.locations = locations or default_locations()
        self.reload()

    def reload(self):
        # values such as URLs may carry a literal '%'
        self.parser = configparser.ConfigParser(interpolation=None)
        self.loaded_from = next((p for p in self.locations if os.path.isfile(p)), None)
        if self.loaded_from:
            self.parser.read(self.loaded_from, encoding="utf-8")

    def _typed(self, getter, section, option, fallback):
        try:
            return getter(section, option)
        except (configparser.Error, ValueError):
            return fallback

    def get(self, section, option, fallback=None):
        return self._typed(self.parser.get, section, option, fallback)

    def getboolean(self, section, option, fallback=False):
        return self._typed(self.parser.getboolean, section, option, fallback)

    def getint(self, section, option, fallback=0):
        return self._typed(self.parser.getint, section, option, fallback)

    def getpath(self, section, option, fallback=None):
        raw = self.get(section, option, fallback=fallback)
        return os.path.abspath(os.path.expanduser(raw)) if raw is not None else None

    def getchoice(self, section, option, choices, fallback):
        """Lower-cased value when it is one of `choices`, `fallback` otherwise."""
        value = (self.get(section, option) or "").strip().lower()
        return value if value in choices else fallback


config = AurorusConfig()
