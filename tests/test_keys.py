from __future__ import annotations

import pytest

from suggest_prepop.errors import InvalidInputError
from suggest_prepop.keys import (
    DEFAULT_SCOPE,
    ScopeKeys,
    lex_bounds,
    normalize_scope,
    normalize_scopes,
)


def test_default_scope_uses_bare_base_keys() -> None:
    keys = ScopeKeys("SUGGEST-PREPOP")
    assert keys.cnt_key() == "SUGGEST-PREPOP\x02ITEMS_BY_COUNT"
    assert keys.lex_key(None) == "SUGGEST-PREPOP\x02ITEMS_BY_LEX"
    assert keys.cnt_key(DEFAULT_SCOPE) == keys.cnt_base


def test_scoped_keys_are_normalized_and_distinct() -> None:
    keys = ScopeKeys("NS")
    assert keys.cnt_key("Books") == keys.cnt_key("BOOKS") == "NS\x02ITEMS_BY_COUNT\x02BOOKS"
    assert keys.lex_key("books") != keys.cnt_key("books")
    assert len({keys.cnt_key(s) for s in ("", "a", "b", "ab")}) == 4


def test_scope_from_cnt_key_inverts_cnt_key() -> None:
    keys = ScopeKeys("NS")
    for scope in ("", "MOVIES", "A\x01B"):
        assert keys.scope_from_cnt_key(keys.cnt_key(scope)) == scope
    assert keys.scope_from_cnt_key(keys.lex_key("MOVIES")) is None
    assert keys.scope_from_cnt_key(keys.cnt_base + "X") is None
    assert keys.scope_from_cnt_key(keys.cnt_base + "\x02") is None


def test_normalize_scopes_defaults_to_unscoped() -> None:
    assert normalize_scopes([]) == [DEFAULT_SCOPE]
    assert normalize_scopes(["a", None, "B"]) == ["A", DEFAULT_SCOPE, "B"]


def test_scope_with_separator_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        normalize_scope("x\x02y")


def test_namespace_with_separator_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        ScopeKeys("bad\x02ns")


def test_lex_bounds_encode_prefix() -> None:
    assert lex_bounds("ab") == (b"ab", b"ab\xff")
    assert lex_bounds("") == (b"", b"\xff")
    assert lex_bounds("é") == (b"\xc3\xa9", b"\xc3\xa9\xff")
