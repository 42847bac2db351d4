from __future__ import annotations

import pytest

from sidecar_injector.core.errors import InjectorConfigError, PatternError
from sidecar_injector.core.matcher import NamespacedNameMatcher, build_matcher


def test_build_accepts_trailing_wildcards() -> None:
    m = build_matcher("ns*:sa,namespace:sa*")
    assert len(m.rules) == 2


def test_build_rejects_two_wildcards_in_one_entry() -> None:
    with pytest.raises(PatternError):
        build_matcher("ns*:sa,namespace:sa*sa")


@pytest.mark.parametrize(
    "pattern",
    [
        "",
        "   ",
        "ns",
        "ns:sa:extra",
        "ns:sa,",
        ":sa",
        "ns:",
        "n*s:sa",
        "ns:*sa",
        "ns**:sa",
        "ns:sa**",
    ],
)
def test_build_rejects_malformed_patterns(pattern: str) -> None:
    with pytest.raises(PatternError):
        build_matcher(pattern)


def test_pattern_error_is_a_config_error() -> None:
    with pytest.raises(InjectorConfigError):
        build_matcher("bad")


def test_exact_and_prefix_matching() -> None:
    m = build_matcher("ns*:sa,namespace:sa*")

    assert m.matches("ns", "sa")
    assert m.matches("ns-team-a", "sa")
    assert not m.matches("ns-team-a", "sa2")

    assert m.matches("namespace", "sa")
    assert m.matches("namespace", "sa-builder")
    assert not m.matches("namespace2", "sa")
    assert not m.matches("other", "sa")


def test_matching_is_case_sensitive() -> None:
    m = build_matcher("Team:Builder")
    assert m.matches("Team", "Builder")
    assert not m.matches("team", "builder")


def test_whitespace_around_entries_is_ignored() -> None:
    m = build_matcher(" ns : sa , other:* ")
    assert m.matches("ns", "sa")
    assert m.matches("other", "anything")


def test_lone_wildcard_matches_any_value() -> None:
    m = build_matcher("ci:*")
    assert m.matches("ci", "")
    assert m.matches("ci", "runner")
    assert not m.matches("cd", "runner")


def test_building_twice_is_deterministic() -> None:
    pattern = "ns*:sa,namespace:sa*,exact:exact"
    a = build_matcher(pattern)
    b = NamespacedNameMatcher.from_string(pattern)
    assert a == b

    probes = [("ns", "sa"), ("nsx", "sa"), ("namespace", "sab"), ("exact", "exact"), ("exact", "exactly"), ("", "")]
    for ns, sa in probes:
        assert a.matches(ns, sa) == b.matches(ns, sa)
