"""Public API facade for the suggestion index."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from .index import SuggestionIndex
from .keys import ScopeArg
from .models import KEY_SEPARATOR, ItemOccurrence, SuggestConfig
from .storage import SortedSetStore

logger = logging.getLogger(__name__)


class SuggestAPI:
    """High-level façade consumed by the CLI, the HTTP service, or embedding code."""

    def __init__(self, config: SuggestConfig, store: SortedSetStore | None = None) -> None:
        self._index = SuggestionIndex(config, store)

    @property
    def index(self) -> SuggestionIndex:
        return self._index

    def add(self, item: str, count: int = 1, scopes: Iterable[ScopeArg] = ()) -> int:
        return self._index.add(item, count, *scopes)

    def ask(
        self, prefix: str, count: int | None = None, scopes: Iterable[ScopeArg] = ()
    ) -> list[str]:
        return self._index.ask(prefix, count, *scopes)

    def prune(self, keep: int | None = None, scopes: Iterable[ScopeArg] = ()) -> int:
        return self._index.prune(keep, *scopes)

    def drop_prefix(self, prefix: str, scopes: Iterable[ScopeArg] = ()) -> int:
        return self._index.drop_prefix(prefix, *scopes)

    def scopes(self, *, refresh: bool = False) -> list[str]:
        return self._index.scopes(refresh=refresh)

    def ingest(self, occurrences: Iterable[ItemOccurrence]) -> int:
        """Add a batch of occurrences; returns how many records were applied."""
        applied = 0
        with self._index.store.batch():
            for occ in occurrences:
                self._index.add(occ.item, occ.count, *occ.scopes)
                applied += 1
        logger.info("Ingested %d occurrence records", applied)
        return applied

    def ingest_file(self, path: str | Path) -> int:
        """Load a JSONL file of occurrence records and ingest it."""
        with Path(path).open("r", encoding="utf-8") as fh:
            records = [ItemOccurrence.model_validate_json(line) for line in fh if line.strip()]
        return self.ingest(records)

    def snapshot(self) -> dict[str, dict[str, float]]:
        """Return the raw sorted sets under this index's namespace."""
        return self._index.store.dump(self._index.config.cache_namespace + KEY_SEPARATOR)

    def snapshot_json(self) -> str:
        """Serialize the raw sorted sets as JSON."""
        return json.dumps(self.snapshot(), indent=2, sort_keys=True)


def build_api(
    config: SuggestConfig | None = None, store: SortedSetStore | None = None
) -> SuggestAPI:
    """Convenience constructor with defaults."""
    return SuggestAPI(config or SuggestConfig(), store)
