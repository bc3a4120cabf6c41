"""Store key derivation and input checks shared by every index operation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .errors import InvalidInputError
from .models import KEY_SEPARATOR

DEFAULT_SCOPE = ""
LEX_SENTINEL = b"\xff"

ScopeArg = str | None


def _utf8(text: str, what: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidInputError(f"{what} {text!r} is not valid UTF-8 text") from exc


def normalize_scope(scope: ScopeArg) -> str:
    """Return the canonical (upper-cased) form of a scope name."""
    if scope is None:
        return DEFAULT_SCOPE
    if not isinstance(scope, str):
        raise InvalidInputError(f"scope must be a string, got {type(scope).__name__}")
    if KEY_SEPARATOR in scope:
        raise InvalidInputError(f"scope {scope!r} contains the reserved separator")
    _utf8(scope, "scope")
    return scope.upper()


def normalize_scopes(scopes: Iterable[ScopeArg]) -> list[str]:
    """Normalize a scope list, falling back to the default scope when empty."""
    normalized = [normalize_scope(scope) for scope in scopes]
    return normalized or [DEFAULT_SCOPE]


def check_item(item: str) -> str:
    if not isinstance(item, str) or not item:
        raise InvalidInputError("item must be a non-empty string")
    if KEY_SEPARATOR in item:
        raise InvalidInputError(f"item {item!r} contains the reserved separator")
    _utf8(item, "item")
    return item


def check_count(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer")
    if value < 0:
        raise InvalidInputError(f"{name} must not be negative, got {value}")
    return value


def lex_bounds(prefix: str) -> tuple[bytes, bytes]:
    """Inclusive lower and exclusive upper bound covering every item with ``prefix``.

    Items are compared as UTF-8 bytes. 0xFF never occurs in UTF-8, so
    ``prefix + 0xFF`` sorts after every extension of the prefix.
    """
    if not isinstance(prefix, str):
        raise InvalidInputError("prefix must be a string")
    start = _utf8(prefix, "prefix")
    return start, start + LEX_SENTINEL


@dataclass(frozen=True)
class ScopeKeys:
    """Maps (namespace, scope) to the two sorted-set keys backing that scope."""

    namespace: str
    lex_base: str = field(init=False)
    cnt_base: str = field(init=False)

    def __post_init__(self) -> None:
        if not self.namespace or KEY_SEPARATOR in self.namespace:
            raise InvalidInputError(f"invalid namespace {self.namespace!r}")
        _utf8(self.namespace, "namespace")
        object.__setattr__(self, "lex_base", KEY_SEPARATOR.join((self.namespace, "ITEMS_BY_LEX")))
        object.__setattr__(
            self, "cnt_base", KEY_SEPARATOR.join((self.namespace, "ITEMS_BY_COUNT"))
        )

    def lex_key(self, scope: ScopeArg = DEFAULT_SCOPE) -> str:
        return self._join(self.lex_base, normalize_scope(scope))

    def cnt_key(self, scope: ScopeArg = DEFAULT_SCOPE) -> str:
        return self._join(self.cnt_base, normalize_scope(scope))

    def scope_from_cnt_key(self, key: str) -> str | None:
        """Invert :meth:`cnt_key`; ``None`` for keys that belong to something else."""
        if key == self.cnt_base:
            return DEFAULT_SCOPE
        head = self.cnt_base + KEY_SEPARATOR
        if key.startswith(head) and len(key) > len(head):
            return key[len(head) :]
        return None

    @staticmethod
    def _join(base: str, scope: str) -> str:
        return KEY_SEPARATOR.join((base, scope)) if scope else base
