"""Version constraint expressions for administrator-pinned dependencies.

Supported forms, ANDed when separated by whitespace:

- ``1.x`` / ``1.2.*``: prefix wildcards (bare ``*`` or ``x`` matches anything)
- ``^1.2.3``: same major, at least 1.2.3
- ``~1.2.3``: same major and minor, at least 1.2.3
- ``>=1.2``, ``>1.2``, ``<2``, ``<=2.0.1``, ``=1.0``, ``1.0``: comparators
- ``1.0 - 2.0``: inclusive range (takes precedence over everything else)

Tokens that fit none of these match every version. Each such token is
logged and kept in ``VersionConstraint.unparsed_tokens``.
"""
from __future__ import annotations

import logging
import operator
import re
import sys
from typing import Callable, List

from .semver import ParsedVersion, parse_version

logger = logging.getLogger(__name__)

Predicate = Callable[[ParsedVersion], bool]

_COMPARATOR_RE = re.compile(r"^(>=|<=|>|<|=)?(.+)$")
_COMPARATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
}
_WILDCARDS = ("x", "X", "*")
_UNBOUNDED = ParsedVersion(sys.maxsize, sys.maxsize, sys.maxsize)


def _any_version(_: ParsedVersion) -> bool:
    return True


class VersionConstraint:
    """Compiled constraint expression; stateless once constructed."""

    def __init__(self, raw: str):
        self.raw = raw
        self.unparsed_tokens: List[str] = []
        trimmed = (raw or "").strip()
        if " - " in trimmed:
            self._predicates = [self._range(trimmed)]
        else:
            self._predicates = [self._token(t) for t in trimmed.split() if t]

    def matches(self, version: ParsedVersion) -> bool:
        """Return True when every predicate accepts ``version``."""
        return all(pred(version) for pred in self._predicates)

    def __repr__(self) -> str:
        return f"VersionConstraint({self.raw!r})"

    @staticmethod
    def _range(expr: str) -> Predicate:
        left, right = expr.split(" - ", 1)
        lower = parse_version(left) or ParsedVersion(0, 0, 0)
        upper = parse_version(right) or _UNBOUNDED
        return lambda v: lower <= v <= upper

    def _lenient(self, token: str) -> Predicate:
        logger.warning("Constraint '%s': token '%s' is not a version; it matches everything", self.raw, token)
        self.unparsed_tokens.append(token)
        return _any_version

    def _token(self, token: str) -> Predicate:
        if token in _WILDCARDS:
            return _any_version

        if token[-2:] in (".x", ".X", ".*"):
            segments = token[:-2].split(".")
            if not all(s.isdigit() for s in segments) or len(segments) > 2:
                return self._lenient(token)
            fixed = tuple(int(s) for s in segments)
            return lambda v: (v.major, v.minor)[:len(fixed)] == fixed

        if token.startswith("^"):
            base = parse_version(token[1:])
            if base is not None:
                upper = ParsedVersion(base.major + 1, 0, 0)
                return lambda v: base <= v < upper

        if token.startswith("~"):
            base = parse_version(token[1:])
            if base is not None:
                upper = ParsedVersion(base.major, base.minor + 1, 0)
                return lambda v: base <= v < upper

        m = _COMPARATOR_RE.match(token)
        target = parse_version(m.group(2)) if m else None
        if target is None:
            return self._lenient(token)
        compare = _COMPARATORS[m.group(1) or "="]
        return lambda v: compare(v, target)
