from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from polysearch.base import SearchResult, WeightedResult
from polysearch.utils import dedup_key


def merge_results(results: Iterable[WeightedResult]) -> list[WeightedResult]:
    """Collapse results sharing a normalized URL and order them by score.

    The member with the highest weight (lowest rank on a tie) supplies
    title, snippet, rank and weight; sources are the union of the group.
    """
    groups: dict[str, WeightedResult] = {}
    for result in results:
        key = dedup_key(result.url)
        if not key:
            continue

        existing = groups.get(key)
        if existing is None:
            groups[key] = result
            continue

        sources = _union_sources(existing.sources, result.sources)
        winner = result if _outranks(result, existing) else existing
        groups[key] = replace(winner, sources=sources)

    return sorted(groups.values(), key=_score_key)


def to_search_results(results: Iterable[WeightedResult]) -> tuple[SearchResult, ...]:
    return tuple(
        SearchResult(
            title=result.title,
            url=result.url,
            snippet=result.snippet,
            sources=result.sources,
        )
        for result in results
    )


def dedupe_suggestions(suggestions: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for suggestion in suggestions:
        normalized = suggestion.strip().lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        unique.append(suggestion)
    return unique


def _outranks(candidate: WeightedResult, current: WeightedResult) -> bool:
    if candidate.weight != current.weight:
        return candidate.weight > current.weight
    return candidate.rank < current.rank


def _union_sources(left: tuple[str, ...], right: tuple[str, ...]) -> tuple[str, ...]:
    merged = list(left)
    for name in right:
        if name not in merged:
            merged.append(name)
    return tuple(merged)


def _score_key(result: WeightedResult) -> tuple[float, float]:
    return (result.score, -result.weight)
