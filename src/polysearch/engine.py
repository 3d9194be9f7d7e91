from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from cachetools import LRUCache

from polysearch.base import (
    DEFAULT_PER_PAGE,
    AggregateResponse,
    Pagination,
    ProviderBinding,
    ProviderResponse,
    SearchRequest,
    SuggestProvider,
    WeightedResult,
)
from polysearch.cache import CacheConfig, ResponseCache, build_cache_key
from polysearch.merge import dedupe_suggestions, merge_results, to_search_results

logger = logging.getLogger(__name__)

MAX_ROUNDS = 5
MAX_OVERRIDE_CACHES = 16


class AggregationEngine:
    """Fan a search out to every bound provider and merge the answers.

    Each round requests the same provider-native page from all providers in
    parallel; rounds continue until enough deduplicated results exist to
    fill the requested page or ``max_rounds`` is reached.
    """

    def __init__(
        self,
        bindings: Sequence[ProviderBinding],
        *,
        cache: CacheConfig | None = None,
        max_rounds: int = MAX_ROUNDS,
        debug_logging: bool = False,
    ) -> None:
        if not bindings:
            raise ValueError("AggregationEngine requires at least one provider binding")
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")

        self._bindings = tuple(bindings)
        self._cache = ResponseCache(cache)
        # Holds the most recently used override caches only.
        self._override_caches: LRUCache[CacheConfig, ResponseCache] = LRUCache(
            maxsize=MAX_OVERRIDE_CACHES
        )
        self._max_rounds = max_rounds
        self._debug_logging = debug_logging
        self._scopes = tuple(_binding_scope(binding) for binding in self._bindings)

    @property
    def bindings(self) -> tuple[ProviderBinding, ...]:
        return self._bindings

    async def search(self, request: SearchRequest) -> AggregateResponse:
        cache = self._cache_for(request.cache_override)
        per_page = request.per_page or cache.per_page or DEFAULT_PER_PAGE
        pagination = Pagination(page=request.page, per_page=per_page)

        query = request.query.strip()
        if not query:
            return AggregateResponse(results=(), pagination=pagination)

        key = build_cache_key(
            scopes=self._scopes,
            query=query,
            page=request.page,
            per_page=per_page,
            extra=request.extra,
        )
        cached = cache.get(key)
        if cached is not None:
            self._debug_log("cache_hit", query_len=len(query), page=request.page)
            return cached

        response, any_success = await self._aggregate(
            query=query,
            page=request.page,
            per_page=per_page,
            extra=request.extra,
        )
        if any_success:
            cache.set(key, response)
        return response

    async def suggest(self, query: str) -> list[str]:
        normalized = query.strip()
        if not normalized:
            return []

        capable = [
            binding
            for binding in self._bindings
            if isinstance(binding.provider, SuggestProvider)
        ]
        if not capable:
            return []

        outcomes = await asyncio.gather(
            *(
                self._call(binding, binding.provider.suggest, normalized)  # type: ignore[attr-defined]
                for binding in capable
            ),
            return_exceptions=True,
        )

        collected: list[str] = []
        for binding, outcome in zip(capable, outcomes):
            if isinstance(outcome, BaseException):
                _log_provider_failure(binding, "suggest", outcome)
                continue
            if not isinstance(outcome, (list, tuple)):
                _log_provider_failure(
                    binding, "suggest", TypeError("suggestions must be a list")
                )
                continue
            collected.extend(item for item in outcome if isinstance(item, str))

        suggestions = dedupe_suggestions(collected)
        self._debug_log(
            "suggest_complete",
            provider_count=len(capable),
            collected_count=len(collected),
            returned_count=len(suggestions),
        )
        return suggestions

    async def aclose(self) -> None:
        """Release provider resources (private HTTP clients)."""
        for binding in self._bindings:
            close = getattr(binding.provider, "aclose", None)
            if close is not None:
                await close()

    async def _aggregate(
        self,
        *,
        query: str,
        page: int,
        per_page: int,
        extra: Mapping[str, Any],
    ) -> tuple[AggregateResponse, bool]:
        target_count = page * per_page
        accumulated: list[WeightedResult] = []
        provider_totals: dict[str, int] = {}
        any_success = False
        driver_page = 1

        while len(accumulated) < target_count and driver_page <= self._max_rounds:
            outcomes = await asyncio.gather(
                *(
                    self._search_binding(binding, query, driver_page, per_page, extra)
                    for binding in self._bindings
                ),
                return_exceptions=True,
            )

            round_count = 0
            for binding, outcome in zip(self._bindings, outcomes):
                if isinstance(outcome, BaseException):
                    _log_provider_failure(binding, "search", outcome)
                    continue

                any_success = True
                name = binding.name
                if (
                    name not in provider_totals
                    and outcome.total_results is not None
                    and outcome.total_results > 0
                ):
                    provider_totals[name] = outcome.total_results

                for index, raw in enumerate(outcome.results):
                    accumulated.append(
                        WeightedResult(
                            title=raw.title,
                            url=raw.url,
                            snippet=raw.snippet,
                            weight=binding.weight,
                            rank=(driver_page - 1) * per_page + index + 1,
                            sources=(name,),
                        )
                    )
                    round_count += 1

            accumulated = merge_results(accumulated)
            self._debug_log(
                "round_complete",
                driver_page=driver_page,
                round_count=round_count,
                merged_count=len(accumulated),
                target_count=target_count,
            )
            driver_page += 1

        offset = (page - 1) * per_page
        window = accumulated[offset : offset + per_page]
        estimated_total = sum(provider_totals.values())

        return (
            AggregateResponse(
                results=to_search_results(window),
                pagination=Pagination(page=page, per_page=per_page),
                total_results=estimated_total or len(accumulated),
            ),
            any_success,
        )

    async def _search_binding(
        self,
        binding: ProviderBinding,
        query: str,
        driver_page: int,
        per_page: int,
        extra: Mapping[str, Any],
    ) -> ProviderResponse:
        payload = await self._call(
            binding,
            binding.provider.search,
            query,
            page=driver_page,
            per_page=per_page,
            extra=extra,
        )
        return ProviderResponse.from_payload(payload)

    async def _call(
        self,
        binding: ProviderBinding,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        call = _invoke(func, *args, **kwargs)
        if binding.timeout_ms is None:
            return await call
        return await asyncio.wait_for(call, timeout=binding.timeout_ms / 1000)

    def _cache_for(self, override: CacheConfig | None) -> ResponseCache:
        if override is None:
            return self._cache
        cache = self._override_caches.get(override)
        if cache is None:
            cache = ResponseCache(override)
            self._override_caches[override] = cache
        return cache

    def _debug_log(self, event: str, **fields: object) -> None:
        if not self._debug_logging:
            return
        logger.info("aggregate_debug event=%s %s", event, _format_log_fields(fields))


async def _invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)

    # Blocking adapters run off the event loop.
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


def _binding_scope(binding: ProviderBinding) -> str:
    scope = getattr(binding.provider, "cache_scope", None)
    if scope:
        return f"{binding.name}@{scope}"
    return binding.name


def _log_provider_failure(
    binding: ProviderBinding, operation: str, exc: BaseException
) -> None:
    reason = "timeout" if isinstance(exc, TimeoutError) else exc.__class__.__name__
    logger.warning(
        "provider_failed provider=%s operation=%s reason=%s detail=%s",
        binding.name,
        operation,
        reason,
        str(exc).replace("\n", " ").strip() or "-",
    )


def _format_log_fields(fields: dict[str, object]) -> str:
    if not fields:
        return ""
    parts: list[str] = []
    for key in sorted(fields):
        value = fields[key]
        text = str(value).replace("\n", " ").replace("\r", " ").strip()
        if not text:
            text = "-"
        parts.append(f"{key}={text}")
    return " ".join(parts)
