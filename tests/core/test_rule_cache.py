from __future__ import annotations

from headerapp.cache import ABSENT, HeaderRuleCache
from headerapp.parser import parse


def test_unresolved_site_is_none() -> None:
    assert HeaderRuleCache().lookup("nowhere") is None


def test_absent_and_empty_are_distinct() -> None:
    cache = HeaderRuleCache()
    cache.populate("absent", ABSENT)
    cache.populate("empty", [])
    assert cache.lookup("absent") is ABSENT
    assert cache.lookup("empty") == ()
    assert cache.lookup("empty") is not ABSENT


def test_populate_publishes_an_immutable_tuple() -> None:
    cache = HeaderRuleCache()
    rules = [parse("/a", "x: 1")]
    cache.populate("s", rules)
    rules.append(parse("/b", "y: 2"))
    entry = cache.lookup("s")
    assert isinstance(entry, tuple)
    assert len(entry) == 1


def test_clear_all_drops_every_site() -> None:
    cache = HeaderRuleCache()
    cache.populate("a", ABSENT)
    cache.populate("b", [parse("/", "x: 1")])
    assert cache.clear_all() == 2
    assert len(cache) == 0
    assert cache.lookup("a") is None


def test_populate_from_before_a_clear_is_returned_but_not_stored() -> None:
    cache = HeaderRuleCache()
    generation = cache.generation
    cache.clear_all()
    entry = cache.populate("s", [parse("/a", "x: old")], generation)
    assert entry[0].headers["x"] == "old"
    assert cache.lookup("s") is None

    cache.populate("s", ABSENT, cache.generation)
    assert cache.lookup("s") is ABSENT
