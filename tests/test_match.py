"""Tests for role-set comparison strategies."""

from __future__ import annotations

import pytest

from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.policy.match import MatchAll, MatchAny, MatchNone, match_for


class TestMatchAny:
    def test_no_roles_never_match(self) -> None:
        assert not MatchAny().is_match(set(), {"r1"})

    def test_one_shared_role(self) -> None:
        assert MatchAny().is_match({"r2", "r9"}, {"r1", "r2"})

    def test_disjoint(self) -> None:
        assert not MatchAny().is_match({"r3"}, {"r1", "r2"})


class TestMatchAll:
    def test_no_roles(self) -> None:
        assert not MatchAll().is_match([], ["r1"])

    def test_superset_matches(self) -> None:
        assert MatchAll().is_match({"r1", "r2", "extra"}, {"r1", "r2"})

    def test_partial_does_not_match(self) -> None:
        assert not MatchAll().is_match({"r1"}, {"r1", "r2"})

    def test_nothing_required_never_matches(self) -> None:
        assert MatchAll().is_match({"r1"}, set()) is False
        assert MatchAll().is_match(set(), set()) is False


class TestMatchNone:
    def test_shared_role(self) -> None:
        assert not MatchNone().is_match(["r1"], ["r1"])

    def test_disjoint(self) -> None:
        assert MatchNone().is_match(["r1"], ["r2"])


class TestMatchFor:
    @pytest.mark.parametrize("name, cls", [("MatchAny", MatchAny), ("MatchAll", MatchAll), ("MatchNone", MatchNone)])
    def test_known_types(self, name: str, cls: type) -> None:
        match = match_for(name)
        assert isinstance(match, cls)
        assert match.type == name

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid Match Type"):
            match_for("MatchSome")
