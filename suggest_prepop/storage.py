"""Sorted-set storage backends for the suggestion index."""

from __future__ import annotations

import json
import logging
import os
import threading
from bisect import bisect_left, insort
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TypeVar

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import StoreUnavailableError
from .models import SuggestConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SortedSetStore(Protocol):
    """Ordered-set primitives the index needs from its store.

    Each call is expected to be atomic on its own key; nothing spans keys.
    """

    def load(self) -> None: ...

    def batch(self) -> AbstractContextManager[None]: ...

    def add_member(self, key: str, member: str, score: float) -> bool: ...

    def increment_score(self, key: str, member: str, delta: float) -> float: ...

    def score(self, key: str, member: str) -> float | None: ...

    def range_by_lex(self, key: str, start: bytes, stop: bytes) -> list[str]: ...

    def range_by_rank(self, key: str, start: int, stop: int) -> list[str]: ...

    def cardinality(self, key: str) -> int: ...

    def remove_member(self, key: str, member: str) -> bool: ...

    def scan_keys(self, prefix: str) -> list[str]: ...

    def dump(self, prefix: str = "") -> dict[str, dict[str, float]]: ...


@dataclass
class _SortedSet:
    scores: dict[str, float] = field(default_factory=dict)
    lex: list[bytes] = field(default_factory=list)

    def add(self, member: str, score: float) -> None:
        if member not in self.scores:
            insort(self.lex, member.encode("utf-8"))
        self.scores[member] = score

    def discard(self, member: str) -> bool:
        if member not in self.scores:
            return False
        del self.scores[member]
        encoded = member.encode("utf-8")
        del self.lex[bisect_left(self.lex, encoded)]
        return True

    def by_rank(self) -> list[str]:
        return sorted(self.scores, key=lambda m: (self.scores[m], m.encode("utf-8")))


def _rank_slice(start: int, stop: int, size: int) -> slice:
    """Translate inclusive, possibly negative ranks into a list slice."""
    if start < 0:
        start = max(size + start, 0)
    if stop < 0:
        stop = size + stop
    return slice(start, max(stop + 1, start))


@dataclass
class InMemorySortedSetStore(SortedSetStore):
    """Simple in-memory store, convenient for tests.

    A single lock serializes every primitive, so concurrent callers (the
    HTTP threadpool) see each call as atomic.
    """

    _sets: dict[str, _SortedSet] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def load(self) -> None:
        return None

    def batch(self) -> AbstractContextManager[None]:
        return nullcontext()

    def add_member(self, key: str, member: str, score: float) -> bool:
        with self._lock:
            zset = self._sets.setdefault(key, _SortedSet())
            if member in zset.scores:
                return False
            zset.add(member, float(score))
            return True

    def increment_score(self, key: str, member: str, delta: float) -> float:
        with self._lock:
            zset = self._sets.setdefault(key, _SortedSet())
            result = zset.scores.get(member, 0.0) + float(delta)
            zset.add(member, result)
            return result

    def score(self, key: str, member: str) -> float | None:
        with self._lock:
            zset = self._sets.get(key)
            return None if zset is None else zset.scores.get(member)

    def range_by_lex(self, key: str, start: bytes, stop: bytes) -> list[str]:
        with self._lock:
            zset = self._sets.get(key)
            if zset is None:
                return []
            lo = bisect_left(zset.lex, start)
            hi = bisect_left(zset.lex, stop)
            return [raw.decode("utf-8") for raw in zset.lex[lo:hi]]

    def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        with self._lock:
            zset = self._sets.get(key)
            if zset is None:
                return []
            ranked = zset.by_rank()
            return ranked[_rank_slice(start, stop, len(ranked))]

    def cardinality(self, key: str) -> int:
        with self._lock:
            zset = self._sets.get(key)
            return 0 if zset is None else len(zset.scores)

    def remove_member(self, key: str, member: str) -> bool:
        with self._lock:
            zset = self._sets.get(key)
            if zset is None:
                return False
            removed = zset.discard(member)
            if not zset.scores:
                # Empty sets vanish from the key space, as they do in Redis.
                del self._sets[key]
            return removed

    def scan_keys(self, prefix: str) -> list[str]:
        with self._lock:
            return [key for key in self._sets if key.startswith(prefix)]

    def dump(self, prefix: str = "") -> dict[str, dict[str, float]]:
        with self._lock:
            return {
                key: dict(zset.scores)
                for key, zset in self._sets.items()
                if key.startswith(prefix)
            }

    def replace(self, data: dict[str, dict[str, float]]) -> None:
        with self._lock:
            self._sets.clear()
            for key, members in data.items():
                for member, score in members.items():
                    self.add_member(key, member, score)


@dataclass
class JsonlSortedSetStore(SortedSetStore):
    """Persist sorted sets to a JSONL file, one set per line.

    The file is rewritten after each mutation, or once at the end of a
    :meth:`batch`. Writes go to a sibling temp file that replaces the
    original, so a crash mid-write leaves the previous contents intact.
    """

    path: Path
    _sets: InMemorySortedSetStore = field(default_factory=InMemorySortedSetStore)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    _batch_depth: int = field(default=0, repr=False, compare=False)
    _dirty: bool = field(default=False, repr=False, compare=False)

    def load(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as fh:
            lines = fh.readlines()
        parsed: dict[str, dict[str, float]] = {}
        for line in lines:
            line = line.strip()
            if not line:
                continue
            data = json.loads(line)
            parsed[data["key"]] = {m: float(s) for m, s in data["members"].items()}
        self._sets.replace(parsed)
        logger.debug("Loaded %d sorted sets from %s", len(parsed), self.path)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer file rewrites until the outermost batch exits."""
        with self._lock:
            self._batch_depth += 1
        try:
            yield
        finally:
            with self._lock:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._dirty:
                    self._flush()

    def add_member(self, key: str, member: str, score: float) -> bool:
        with self._lock:
            added = self._sets.add_member(key, member, score)
            if added:
                self._changed()
            return added

    def increment_score(self, key: str, member: str, delta: float) -> float:
        with self._lock:
            result = self._sets.increment_score(key, member, delta)
            self._changed()
            return result

    def score(self, key: str, member: str) -> float | None:
        return self._sets.score(key, member)

    def range_by_lex(self, key: str, start: bytes, stop: bytes) -> list[str]:
        return self._sets.range_by_lex(key, start, stop)

    def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        return self._sets.range_by_rank(key, start, stop)

    def cardinality(self, key: str) -> int:
        return self._sets.cardinality(key)

    def remove_member(self, key: str, member: str) -> bool:
        with self._lock:
            removed = self._sets.remove_member(key, member)
            if removed:
                self._changed()
            return removed

    def scan_keys(self, prefix: str) -> list[str]:
        return self._sets.scan_keys(prefix)

    def dump(self, prefix: str = "") -> dict[str, dict[str, float]]:
        return self._sets.dump(prefix)

    def _changed(self) -> None:
        self._dirty = True
        if self._batch_depth == 0:
            self._flush()

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            for key, members in sorted(self._sets.dump().items()):
                fh.write(json.dumps({"key": key, "members": members}, ensure_ascii=False))
                fh.write("\n")
        os.replace(tmp_path, self.path)
        self._dirty = False


_GLOB_SPECIAL = "\\*?[]"


def _glob_escape(text: str) -> str:
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in text)


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.error("Redis unavailable: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc


@dataclass
class RedisSortedSetStore(SortedSetStore):
    """Sorted sets held in Redis (``decode_responses=True`` client)."""

    client: redis.Redis

    @classmethod
    def from_url(cls, url: str) -> RedisSortedSetStore:
        return cls(client=redis.Redis.from_url(url, decode_responses=True))

    def load(self) -> None:
        self._call(self.client.ping)
        logger.info("Connected to Redis")

    def batch(self) -> AbstractContextManager[None]:
        # Redis applies each command as it arrives; nothing to defer.
        return nullcontext()

    def add_member(self, key: str, member: str, score: float) -> bool:
        return bool(self._call(self.client.zadd, key, {member: score}))

    def increment_score(self, key: str, member: str, delta: float) -> float:
        return float(self._call(self.client.zincrby, key, delta, member))

    def score(self, key: str, member: str) -> float | None:
        result = self._call(self.client.zscore, key, member)
        return None if result is None else float(result)

    def range_by_lex(self, key: str, start: bytes, stop: bytes) -> list[str]:
        low = b"[" + start if start else b"-"
        return list(self._call(self.client.zrangebylex, key, low, b"(" + stop) or [])

    def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        return list(self._call(self.client.zrange, key, start, stop) or [])

    def cardinality(self, key: str) -> int:
        return int(self._call(self.client.zcard, key))

    def remove_member(self, key: str, member: str) -> bool:
        return bool(self._call(self.client.zrem, key, member))

    def scan_keys(self, prefix: str) -> list[str]:
        pattern = _glob_escape(prefix) + "*"
        with _store_errors():
            return list(self.client.scan_iter(match=pattern))

    def dump(self, prefix: str = "") -> dict[str, dict[str, float]]:
        data: dict[str, dict[str, float]] = {}
        with _store_errors():
            for key in self.client.scan_iter(match=_glob_escape(prefix) + "*"):
                if self.client.type(key) != "zset":
                    continue
                members = self.client.zrange(key, 0, -1, withscores=True)
                data[key] = {member: float(score) for member, score in members}
        return data

    @staticmethod
    def _call(fn: Callable[..., T], *args: object) -> T:
        with _store_errors():
            return fn(*args)


def create_store(config: SuggestConfig) -> SortedSetStore:
    """Factory helper selecting the appropriate store."""
    if config.redis_url:
        return RedisSortedSetStore.from_url(config.redis_url)
    if config.store_path:
        return JsonlSortedSetStore(path=Path(config.store_path))
    return InMemorySortedSetStore()
