# aurorus/modules/versions.py
"""
Version handling for pacman-style versions: `[epoch:]pkgver[-pkgrel]`.

 - compare_versions: -1 / 0 / 1, numeric segments beat alphabetic ones,
   a trailing alphabetic segment marks a pre-release (1.0rc1 < 1.0)
 - the release is only compared when both sides carry one, so a
   constraint like `=1.2` accepts `1.2-3`
 - dependency strings: "name", "name>=1.2", "name=2:1.0-1"
"""

from __future__ import annotations
import re
from typing import List, Optional, Tuple

OPERATORS = (">=", "<=", "=", ">", "<")

_DEP_RE = re.compile(r"^\s*([^<>=\s]+)\s*(?:(>=|<=|=|>|<)\s*(\S+))?\s*$")


def parse_version(v: Optional[str]) -> Tuple[int, str, Optional[str]]:
    s = str(v or "").strip()
    epoch = 0
    if ":" in s:
        head, s = s.split(":", 1)
        epoch = int(head) if head.isdigit() else 0
    release = None
    if "-" in s:
        s, release = s.rsplit("-", 1)
    return epoch, s, release


def version_key(s: Optional[str]) -> list:
    key = []
    for part in re.findall(r"\d+|[a-zA-Z]+", str(s or "")):
        key.append(int(part) if part.isdigit() else part.lower())
    return key


def _compare_keys(ka: list, kb: list) -> int:
    for x, y in zip(ka, kb):
        if type(x) == type(y):
            if x < y:
                return -1
            if x > y:
                return 1
        elif isinstance(x, int):
            return 1
        else:
            return -1
    if len(ka) == len(kb):
        return 0
    # the longer key wins if it continues with a number, loses with a letter
    if len(ka) > len(kb):
        return -1 if isinstance(ka[len(kb)], str) else 1
    return 1 if isinstance(kb[len(ka)], str) else -1


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    ea, va, ra = parse_version(a)
    eb, vb, rb = parse_version(b)
    if ea != eb:
        return -1 if ea < eb else 1
    res = _compare_keys(version_key(va), version_key(vb))
    if res != 0 or ra is None or rb is None:
        return res
    return _compare_keys(version_key(ra), version_key(rb))


def parse_dependency(dep: str) -> Tuple[str, Optional[str]]:
    """
    "foo>=1.2" -> ("foo", ">=1.2"), "foo" -> ("foo", None).
    AUR free-text fields may carry a description after ':' (optdepends style); it is dropped.
    """
    text = dep.split(":", 1)[0] if ": " in dep else dep
    m = _DEP_RE.match(text)
    if not m:
        return text.strip(), None
    name, op, ver = m.groups()
    if op and ver:
        return name, f"{op}{ver}"
    return name, None


def split_constraint(constraint: str) -> Tuple[str, str]:
    c = constraint.strip()
    for op in OPERATORS:
        if c.startswith(op):
            return op, c[len(op):].strip()
    return "=", c


def version_satisfies(version: Optional[str], constraint: Optional[str]) -> bool:
    if not constraint:
        return True
    if not version:
        return False
    op, target = split_constraint(constraint)
    res = compare_versions(version, target)
    if op == "=":
        return res == 0
    if op == ">=":
        return res >= 0
    if op == "<=":
        return res <= 0
    if op == ">":
        return res > 0
    return res < 0


def constraints_compatible(constraints: List[str]) -> bool:
    """True when some version can satisfy every constraint at once (interval intersection)."""
    lower = None  # (version, inclusive)
    upper = None
    for c in constraints:
        if not c:
            continue
        op, v = split_constraint(c)
        if op in ("=", ">=", ">"):
            bound = (v, op != ">")
            if lower is None:
                lower = bound
            else:
                res = compare_versions(v, lower[0])
                if res > 0 or (res == 0 and not bound[1]):
                    lower = bound
        if op in ("=", "<=", "<"):
            bound = (v, op != "<")
            if upper is None:
                upper = bound
            else:
                res = compare_versions(v, upper[0])
                if res < 0 or (res == 0 and not bound[1]):
                    upper = bound
    if lower is None or upper is None:
        return True
    res = compare_versions(lower[0], upper[0])
    if res > 0:
        return False
    if res == 0:
        return lower[1] and upper[1]
    return True
