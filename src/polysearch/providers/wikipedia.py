from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from polysearch.base import DEFAULT_PER_PAGE, ProviderError, ProviderResponse, RawResult
from polysearch.providers._http import DEFAULT_TIMEOUT_SECONDS, HttpProviderMixin
from polysearch.registry import register
from polysearch.utils import normalize_text

# Wikipedia requires a descriptive User-Agent
_HEADERS = {
    "User-Agent": "polysearch/0.1.0 (multi-provider search aggregator; bot)",
}


@register
class WikipediaProvider(HttpProviderMixin):
    name = "wikipedia"

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        lang: str = "en",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._init_http(http_client, timeout_seconds=timeout_seconds, headers=_HEADERS)
        self._lang = lang

    @property
    def cache_scope(self) -> str:
        return self._lang

    @property
    def _api_url(self) -> str:
        return f"https://{self._lang}.wikipedia.org/w/api.php"

    async def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse:
        data = await self._request_json(
            "GET",
            self._api_url,
            params={
                "action": "query",
                "list": "search",
                "format": "json",
                "srsearch": query,
                "srlimit": str(per_page),
                "sroffset": str((page - 1) * per_page),
                "srinfo": "totalhits",
            },
            headers=_HEADERS,
        )
        body = data.get("query") if isinstance(data, dict) else None
        if not isinstance(body, dict) or not isinstance(body.get("search"), list):
            raise ProviderError(self.name, "search payload is missing query.search")

        results: list[RawResult] = []
        for item in body["search"]:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            title = str(item["title"])
            results.append(
                RawResult(
                    title=title,
                    url=self._article_url(title),
                    snippet=normalize_text(str(item.get("snippet") or "")) or None,
                )
            )

        info = body.get("searchinfo") if isinstance(body.get("searchinfo"), dict) else {}
        total = info.get("totalhits")
        return ProviderResponse(
            results=tuple(results),
            total_results=total if isinstance(total, int) else None,
        )

    async def suggest(self, query: str) -> list[str]:
        data = await self._request_json(
            "GET",
            self._api_url,
            params={
                "action": "opensearch",
                "search": query,
                "limit": "10",
                "namespace": "0",
                "format": "json",
            },
            headers=_HEADERS,
        )
        # Opensearch format: [query, [titles], [descriptions], [urls]]
        if not isinstance(data, list) or len(data) < 2 or not isinstance(data[1], list):
            return []
        return [title for title in data[1] if isinstance(title, str)]

    def _article_url(self, title: str) -> str:
        return f"https://{self._lang}.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}"
