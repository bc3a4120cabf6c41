"""Score-to-rank fusion for prefix candidates."""

from __future__ import annotations

from collections.abc import Iterable

Candidate = tuple[str, float]


def eligible(candidates: Iterable[tuple[str, float | None]], min_activity: int) -> list[Candidate]:
    """Drop candidates seen fewer than ``min_activity`` times.

    A missing score means the item is gone from the popularity set (for
    instance mid-removal), so it is dropped whatever the floor.
    """
    return [
        (item, score)
        for item, score in candidates
        if score is not None and score >= min_activity
    ]


def rank_candidates(candidates: Iterable[Candidate], limit: int) -> list[str]:
    """Return at most ``limit`` distinct items, most popular first.

    The sort is stable, so equal scores keep their incoming order. An item
    appearing more than once keeps only its highest-scored position.
    """
    ordered = sorted(candidates, key=lambda c: c[1], reverse=True)
    seen: set[str] = set()
    ranked: list[str] = []
    for item, _score in ordered:
        if len(ranked) >= limit:
            break
        if item in seen:
            continue
        seen.add(item)
        ranked.append(item)
    return ranked
