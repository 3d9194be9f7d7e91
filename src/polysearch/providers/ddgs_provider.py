from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ddgs import DDGS
from ddgs.exceptions import DDGSException, RatelimitException, TimeoutException

from polysearch.base import DEFAULT_PER_PAGE, ProviderError, ProviderResponse, RawResult
from polysearch.providers._http import DEFAULT_TIMEOUT_SECONDS
from polysearch.registry import register

logger = logging.getLogger(__name__)


@register
class DdgsProvider:
    """Text search through the ddgs metasearch library.

    ddgs is blocking, so ``search`` is a plain method; the engine runs it in
    a worker thread.
    """

    name = "ddgs"

    def __init__(
        self,
        *,
        backend: str = "auto",
        region: str = "us-en",
        safesearch: str = "moderate",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._backend = backend
        self._region = region
        self._safesearch = safesearch
        self._timeout_seconds = timeout_seconds

    @property
    def cache_scope(self) -> str:
        return f"{self._backend}/{self._region}/{self._safesearch}"

    def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse:
        options = extra or {}
        timeout = max(1, round(self._timeout_seconds))
        try:
            with DDGS(timeout=timeout) as ddgs:
                raw_results = ddgs.text(
                    query,
                    region=str(options.get("region") or self._region),
                    safesearch=str(options.get("safesearch") or self._safesearch),
                    timelimit=options.get("timelimit"),
                    max_results=per_page,
                    page=page,
                    backend=self._backend,
                )
        except RatelimitException as exc:
            raise ProviderError(self.name, "rate-limited") from exc
        except TimeoutException as exc:
            raise ProviderError(self.name, "timed out") from exc
        except DDGSException as exc:
            raise ProviderError(self.name, f"search failed: {exc}") from exc

        results = _normalize_results(raw_results)
        logger.debug("ddgs_results backend=%s count=%d", self._backend, len(results))
        return ProviderResponse(results=tuple(results[:per_page]))


def _normalize_results(raw_results: object) -> list[RawResult]:
    if not isinstance(raw_results, list):
        return []

    results: list[RawResult] = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = _as_non_empty(item.get("href")) or _as_non_empty(item.get("url"))
        if url is None:
            continue
        results.append(
            RawResult(
                title=_as_non_empty(item.get("title")) or "Untitled",
                url=url,
                snippet=_as_non_empty(item.get("body")),
            )
        )
    return results


def _as_non_empty(value: object) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None
