from __future__ import annotations

import threading

import pytest

from suggest_prepop.errors import InvalidInputError
from suggest_prepop.index import SuggestionIndex
from suggest_prepop.models import SuggestConfig
from suggest_prepop.storage import InMemorySortedSetStore


def _index(**overrides: int) -> SuggestionIndex:
    return SuggestionIndex(SuggestConfig(**overrides), InMemorySortedSetStore())


def test_ask_orders_by_popularity_and_filters_inactive() -> None:
    index = _index()
    index.add("mycroft", 11)
    index.add("mycroft holmes", 10)
    index.add("myc", 2)

    assert index.ask("my") == ["mycroft", "mycroft holmes"]


def test_ask_ties_keep_lexical_order_within_scope() -> None:
    index = _index()
    index.add("dr. watson", 6, "doctors")
    index.add("dr watson", 6, "doctors")

    assert index.ask("dr", 5, "doctors") == ["dr watson", "dr. watson"]
    assert index.ask("dr") == []


def test_add_returns_cumulative_score_summed_over_scopes() -> None:
    index = _index()
    assert index.add("sherlock") == 1
    assert index.add("sherlock", 3, "a", "b") == 6
    assert index.add("sherlock", 2, "a") == 5
    assert index.add("sherlock", 0) == 1


def test_scopes_are_case_insensitive() -> None:
    index = _index(min_activity=1)
    index.add("irene adler", 2, "Suspects")
    index.add("irene adler", 3, "SUSPECTS")

    assert index.ask("irene", None, "suspects") == ["irene adler"]
    assert index.store.score(index.keys.cnt_key("suspects"), "irene adler") == 5
    assert index.scopes() == ["SUSPECTS"]


def test_scopes_do_not_leak_into_each_other() -> None:
    index = _index(min_activity=1)
    index.add("moriarty", 9, "villains")
    index.add("mrs hudson", 9, "landladies")

    assert index.ask("m", None, "villains") == ["moriarty"]
    assert index.ask("m", None, "landladies") == ["mrs hudson"]
    assert index.ask("m") == []


def test_multi_scope_ask_deduplicates_keeping_highest_score() -> None:
    index = _index()
    index.add("lestrade", 6, "police")
    index.add("lestrade", 9, "yard")
    index.add("lestrade gregson", 7, "police")

    result = index.ask("les", 10, "police", "yard")
    assert result == ["lestrade", "lestrade gregson"]
    assert len(result) == len(set(result))


def test_multi_scope_ties_follow_scope_order() -> None:
    index = _index()
    index.add("b item", 6, "first")
    index.add("a item", 6, "second")

    assert index.ask("", 10, "first", "second") == ["b item", "a item"]
    assert index.ask("", 10, "second", "first") == ["a item", "b item"]


def test_ask_respects_requested_and_default_count() -> None:
    index = _index(top_count=2)
    for n, item in enumerate(["baker st", "baker street", "bakery", "baked"]):
        index.add(item, 10 + n)

    assert index.ask("bake") == ["baked", "bakery"]
    assert index.ask("bake", 3) == ["baked", "bakery", "baker street"]
    assert index.ask("bake", 0) == []
    assert len(index.ask("bake", 100)) == 4


def test_empty_prefix_scans_whole_scope() -> None:
    index = _index(min_activity=1)
    index.add("alpha", 1)
    index.add("beta", 2)

    assert index.ask("") == ["beta", "alpha"]


def test_prefix_range_covers_non_ascii_extensions() -> None:
    index = _index(min_activity=1)
    index.add("café", 3)
    index.add("cafe", 2)
    index.add("cafÿ", 1)
    index.add("cag", 5)

    assert index.ask("caf", 10) == ["café", "cafe", "cafÿ"]


def test_ask_drops_items_missing_from_popularity() -> None:
    index = _index(min_activity=1)
    index.add("reichenbach", 8)
    index.store.remove_member(index.keys.cnt_key(), "reichenbach")

    assert index.ask("reich") == []


def test_prune_is_noop_within_limit() -> None:
    index = _index(entries_limit=7)
    for n in range(7):
        index.add(f"item {n}", n + 1)

    assert index.prune() == 0
    assert index.store.cardinality(index.keys.cnt_key()) == 7


def test_prune_removes_lowest_scored_from_both_sets() -> None:
    index = _index(entries_limit=7, min_activity=1)
    for n in range(7):
        index.add(f"item {n}", n + 1)

    assert index.prune(4) == 3
    cnt_key, lex_key = index.keys.cnt_key(), index.keys.lex_key()
    assert index.store.cardinality(cnt_key) == 4
    assert index.store.cardinality(lex_key) == 4
    assert index.ask("item", 10) == ["item 6", "item 5", "item 4", "item 3"]


def test_prune_zero_empties_scope_and_leaves_others() -> None:
    index = _index(min_activity=1)
    index.add("one", 1, "a")
    index.add("two", 2, "a")
    index.add("three", 3, "b")

    assert index.prune(0, "a") == 2
    assert index.ask("", 10, "a") == []
    assert index.ask("", 10, "b") == ["three"]
    assert index.scopes(refresh=True) == ["B"]


def test_prune_sums_across_scopes() -> None:
    index = _index()
    for n in range(3):
        index.add(f"x{n}", 1, "a", "b")

    assert index.prune(1, "a", "b") == 4


def test_drop_prefix_removes_range_from_requested_scopes_only() -> None:
    index = _index(min_activity=1)
    for scope in ("", "other"):
        index.add("holmes", 5, scope)
        index.add("holmes mycroft", 5, scope)
        index.add("hudson", 5, scope)

    assert index.drop_prefix("holmes") == 2
    assert index.ask("h", 10) == ["hudson"]
    assert index.store.cardinality(index.keys.cnt_key()) == 1
    assert index.ask("h", 10, "other") == ["holmes", "holmes mycroft", "hudson"]
    assert index.drop_prefix("nothing") == 0


def test_scopes_are_cached_until_refresh() -> None:
    index = _index()
    index.add("a", 1)
    index.add("a", 1, "beta")
    index.add("a", 1, "alpha")

    assert index.scopes() == ["", "ALPHA", "BETA"]

    index.add("a", 1, "gamma")
    assert index.scopes() == ["", "ALPHA", "BETA"]
    assert index.scopes(refresh=True) == ["", "ALPHA", "BETA", "GAMMA"]


def test_scopes_ignore_other_namespaces() -> None:
    store = InMemorySortedSetStore()
    ours = SuggestionIndex(SuggestConfig(cache_namespace="NS"), store)
    theirs = SuggestionIndex(SuggestConfig(cache_namespace="NS-OTHER"), store)
    ours.add("x", 1, "mine")
    theirs.add("x", 1, "yours")

    assert ours.scopes() == ["MINE"]
    assert theirs.scopes() == ["YOURS"]


@pytest.mark.parametrize(
    "item, count",
    [("", 1), ("bad\x02item", 1), ("fine", -1)],
)
def test_add_rejects_invalid_input_before_writing(item: str, count: int) -> None:
    index = _index()
    with pytest.raises(InvalidInputError):
        index.add(item, count)
    assert index.store.scan_keys("") == []


def test_invalid_scope_aborts_before_any_scope_is_written() -> None:
    index = _index()
    with pytest.raises(InvalidInputError):
        index.add("item", 1, "good", "bad\x02scope")
    assert index.store.scan_keys("") == []


def test_negative_keep_and_count_are_rejected() -> None:
    index = _index()
    with pytest.raises(InvalidInputError):
        index.prune(-1)
    with pytest.raises(InvalidInputError):
        index.ask("x", -2)


def test_ask_skips_items_missing_from_popularity_without_floor() -> None:
    index = _index(min_activity=0)
    index.add("baskerville", 1)
    index.add("baskerville hall", 1)
    index.store.remove_member(index.keys.cnt_key(), "baskerville")

    assert index.ask("bask", 10) == ["baskerville hall"]


def test_concurrent_adds_accumulate_every_increment() -> None:
    index = _index(min_activity=1)
    n_threads, per_thread, n_items = 8, 2000, 50

    def worker() -> None:
        for i in range(per_thread):
            index.add(f"item{i % n_items}", 1)

    threads = [threading.Thread(target=worker) for _ in range(n_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    cnt_key, lex_key = index.keys.cnt_key(), index.keys.lex_key()
    total = sum(index.store.score(cnt_key, f"item{i}") for i in range(n_items))
    assert total == n_threads * per_thread
    assert index.store.cardinality(lex_key) == n_items
    assert len(index.store.range_by_lex(lex_key, b"", b"\xff")) == n_items


@pytest.mark.parametrize("item", ["bad\ud800item", "\udcff"])
def test_add_rejects_unencodable_item_before_writing(item: str) -> None:
    index = _index()
    with pytest.raises(InvalidInputError):
        index.add(item)
    assert index.store.scan_keys("") == []


def test_unencodable_prefix_and_scope_are_invalid_input() -> None:
    index = _index()
    index.add("moriarty", 5)

    with pytest.raises(InvalidInputError):
        index.ask("\udcff")
    with pytest.raises(InvalidInputError):
        index.drop_prefix("mor\ud800")
    with pytest.raises(InvalidInputError):
        index.add("moran", 1, "gang\ud800")
    with pytest.raises(InvalidInputError):
        index.ask("m", None, "\udc80")
    assert sorted(index.store.scan_keys("")) == sorted([index.keys.lex_key(), index.keys.cnt_key()])
