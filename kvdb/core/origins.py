"""Origin allow-list matching for cross-origin requests.

Rules come from the comma-separated ``CORS_ORIGINS`` setting and take one of
three forms:

- ``*``: every origin is allowed
- a wildcard pattern such as ``*.example.org`` or ``https://*.example.org``
- an exact origin such as ``https://example.com``

Wildcard rules are compiled once, when the matcher is built. Matching is
existential: any matching rule allows the origin, so rule order is irrelevant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Pattern

ALLOW_ALL = "*"


def compile_wildcard(rule: str) -> Pattern[str]:
    """Compile a wildcard rule into an anchored regular expression.

    Literal parts are escaped; each ``*`` matches any sequence of characters.

    Examples:
        >>> bool(compile_wildcard("*.example.org").match("a.example.org"))
        True
        >>> bool(compile_wildcard("*.example.org").match("evilexample.org"))
        False
    """
    pattern = ".*".join(re.escape(part) for part in rule.split("*"))
    return re.compile(f"^{pattern}$")


@dataclass(frozen=True)
class OriginMatcher:
    """Immutable set of origin rules.

    Attributes:
        allows_all: True when the allow-all rule is configured.
        exact: Origins compared by string equality.
        patterns: Precompiled wildcard rules.
    """

    allows_all: bool
    exact: frozenset[str]
    patterns: tuple[Pattern[str], ...]

    @classmethod
    def from_rules(cls, rules: Iterable[str]) -> "OriginMatcher":
        exact: set[str] = set()
        patterns: list[Pattern[str]] = []
        allows_all = False
        for raw in rules:
            rule = raw.strip()
            if not rule:
                continue
            if rule == ALLOW_ALL:
                allows_all = True
            elif "*" in rule:
                patterns.append(compile_wildcard(rule))
            else:
                exact.add(rule)
        return cls(allows_all=allows_all, exact=frozenset(exact), patterns=tuple(patterns))

    def is_allowed(self, origin: str) -> bool:
        """Return whether a request origin is permitted."""
        if self.allows_all:
            return True
        if origin in self.exact:
            return True
        return any(pattern.match(origin) for pattern in self.patterns)

    @property
    def is_empty(self) -> bool:
        return not (self.allows_all or self.exact or self.patterns)
