"""Prefix-and-popularity suggestion index."""

from __future__ import annotations

import logging

from .keys import (
    ScopeArg,
    ScopeKeys,
    check_count,
    check_item,
    lex_bounds,
    normalize_scopes,
)
from .models import SuggestConfig
from .ranking import Candidate, eligible, rank_candidates
from .storage import SortedSetStore, create_store

logger = logging.getLogger(__name__)


class SuggestionIndex:
    """Suggests the most popular known items starting with a typed prefix.

    Every scope is backed by two sorted sets in the store: a lexical set
    (all scores 0) used for prefix range scans, and a popularity set scored
    by cumulative occurrence count. The popularity set is authoritative;
    the lexical set may briefly hold items it no longer has.
    """

    def __init__(
        self, config: SuggestConfig | None = None, store: SortedSetStore | None = None
    ) -> None:
        self.config = config or SuggestConfig()
        self.store = store or create_store(self.config)
        self.store.load()
        self.keys = ScopeKeys(self.config.cache_namespace)
        self._scopes: list[str] = []
        self._scopes_computed = False

    def add(self, item: str, count: int = 1, *scopes: ScopeArg) -> int:
        """Record ``count`` occurrences of ``item`` in each scope.

        Returns the sum of the item's resulting popularity across scopes.
        """
        check_item(item)
        check_count(count, "count")
        targets = normalize_scopes(scopes)

        total = 0.0
        for scope in targets:
            self.store.add_member(self.keys.lex_key(scope), item, 0)
            total += self.store.increment_score(self.keys.cnt_key(scope), item, count)
        logger.debug("Added %r x%d to scopes %s", item, count, targets)
        return int(total)

    def ask(self, prefix: str, count: int | None = None, *scopes: ScopeArg) -> list[str]:
        """Return up to ``count`` items starting with ``prefix``, most popular first."""
        limit = self.config.top_count if count is None else check_count(count, "count")
        start, stop = lex_bounds(prefix)
        targets = normalize_scopes(scopes)

        candidates: list[Candidate] = []
        for scope in targets:
            cnt_key = self.keys.cnt_key(scope)
            matches = self.store.range_by_lex(self.keys.lex_key(scope), start, stop)
            scored = [(item, self.store.score(cnt_key, item)) for item in matches]
            candidates.extend(eligible(scored, self.config.min_activity))
        return rank_candidates(candidates, limit)

    def prune(self, keep: int | None = None, *scopes: ScopeArg) -> int:
        """Remove all but the ``keep`` most popular items from each scope."""
        keep = self.config.entries_limit if keep is None else check_count(keep, "keep")
        targets = normalize_scopes(scopes)

        removed = 0
        for scope in targets:
            cnt_key = self.keys.cnt_key(scope)
            lex_key = self.keys.lex_key(scope)
            # Popularity set decides membership even if the two have drifted.
            total = self.store.cardinality(cnt_key)
            if total <= keep:
                continue
            excess = total - keep
            doomed = self.store.range_by_rank(cnt_key, 0, excess - 1)
            with self.store.batch():
                for item in doomed:
                    self.store.remove_member(cnt_key, item)
                    self.store.remove_member(lex_key, item)
            removed += len(doomed)
            logger.info("Pruned %d of %d items from scope %r", len(doomed), total, scope)
        return removed

    def drop_prefix(self, prefix: str, *scopes: ScopeArg) -> int:
        """Remove every item starting with ``prefix`` regardless of popularity."""
        start, stop = lex_bounds(prefix)
        targets = normalize_scopes(scopes)

        removed = 0
        for scope in targets:
            lex_key = self.keys.lex_key(scope)
            cnt_key = self.keys.cnt_key(scope)
            matches = self.store.range_by_lex(lex_key, start, stop)
            with self.store.batch():
                for item in matches:
                    self.store.remove_member(cnt_key, item)
                    self.store.remove_member(lex_key, item)
            removed += len(matches)
            if matches:
                logger.info(
                    "Dropped %d items with prefix %r from scope %r", len(matches), prefix, scope
                )
        return removed

    def scopes(self, *, refresh: bool = False) -> list[str]:
        """Known scopes, computed on first use and cached afterwards."""
        if refresh or not self._scopes_computed:
            self._scopes = self._discover_scopes()
            self._scopes_computed = True
        return list(self._scopes)

    def _discover_scopes(self) -> list[str]:
        found = set()
        for key in self.store.scan_keys(self.keys.cnt_base):
            scope = self.keys.scope_from_cnt_key(key)
            if scope is not None:
                found.add(scope)
        return sorted(found)
