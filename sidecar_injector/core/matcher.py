"""Namespace/service-account matcher.

Operators scope which service accounts may trigger injection with a pattern string such as:

    kube-system:replicaset-controller,team-*:builder-*

Grammar (intentionally minimal):
- entries are comma-separated `namespace:serviceaccount` pairs
- each half is either a literal (exact match) or ends with a single `*` (prefix match)

Anything else fails the whole build. The matcher is compiled once and only read afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from sidecar_injector.core.errors import PatternError

WILDCARD = "*"


@dataclass(frozen=True)
class _Pattern:
    value: str
    prefix: bool = False

    def matches(self, candidate: str) -> bool:
        if self.prefix:
            return candidate.startswith(self.value)
        return candidate == self.value


@dataclass(frozen=True)
class _Rule:
    namespace: _Pattern
    service_account: _Pattern


def _compile_half(raw: str, *, entry: str, what: str) -> _Pattern:
    s = raw.strip()
    if not s:
        raise PatternError(f"empty {what} in entry '{entry}'")
    count = s.count(WILDCARD)
    if count == 0:
        return _Pattern(value=s)
    if count > 1:
        raise PatternError(f"{what} '{s}' in entry '{entry}' has more than one wildcard")
    if not s.endswith(WILDCARD):
        raise PatternError(f"{what} '{s}' in entry '{entry}': wildcard is only allowed as the last character")
    return _Pattern(value=s[:-1], prefix=True)


@dataclass(frozen=True)
class NamespacedNameMatcher:
    rules: Tuple[_Rule, ...]

    @classmethod
    def from_string(cls, pattern: str) -> "NamespacedNameMatcher":
        if not (pattern or "").strip():
            raise PatternError("matcher pattern is empty")

        rules = []
        for raw_entry in pattern.split(","):
            entry = raw_entry.strip()
            parts = entry.split(":")
            if len(parts) != 2:
                raise PatternError(f"entry '{entry}' does not follow the 'namespace:serviceaccount' format")
            rules.append(
                _Rule(
                    namespace=_compile_half(parts[0], entry=entry, what="namespace"),
                    service_account=_compile_half(parts[1], entry=entry, what="service account"),
                )
            )
        return cls(rules=tuple(rules))

    def matches(self, namespace: str, service_account: str) -> bool:
        for rule in self.rules:
            if rule.namespace.matches(namespace) and rule.service_account.matches(service_account):
                return True
        return False


def build_matcher(pattern: str) -> NamespacedNameMatcher:
    """Compile `pattern`, raising `PatternError` if any entry is malformed."""
    return NamespacedNameMatcher.from_string(pattern)
