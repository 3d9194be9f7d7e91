from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
from fake_useragent import UserAgent
from lxml import html

from polysearch.base import DEFAULT_PER_PAGE, ProviderResponse, RawResult
from polysearch.providers._http import DEFAULT_TIMEOUT_SECONDS, HttpProviderMixin
from polysearch.registry import register
from polysearch.utils import normalize_text

logger = logging.getLogger(__name__)
ua = UserAgent()

_MAX_FETCHES_PER_PAGE = 4


@register
class DuckDuckGoProvider(HttpProviderMixin):
    """DuckDuckGo web results scraped from the HTML endpoint."""

    name = "duckduckgo"
    search_url = "https://html.duckduckgo.com/html/"
    suggest_url = "https://duckduckgo.com/ac/"

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        region: str = "us-en",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._init_http(http_client, timeout_seconds=timeout_seconds)
        self._region = region

    @property
    def cache_scope(self) -> str:
        return self._region

    async def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse:
        region = str((extra or {}).get("region") or self._region)
        offset = (page - 1) * per_page

        # The HTML endpoint serves 10 results first and up to 15 after that,
        # starting at any offset ``s``; keep fetching until the window is full.
        results: list[RawResult] = []
        seen: set[str] = set()
        for _ in range(_MAX_FETCHES_PER_PAGE):
            batch = await self._fetch(query, region, offset + len(results))
            fresh = [result for result in batch if result.url not in seen]
            if not fresh:
                break
            seen.update(result.url for result in fresh)
            results.extend(fresh)
            if len(results) >= per_page:
                break

        logger.debug(
            "duckduckgo_results page=%d offset=%d count=%d", page, offset, len(results)
        )
        return ProviderResponse(results=tuple(results[:per_page]))

    async def _fetch(self, query: str, region: str, offset: int) -> list[RawResult]:
        payload = {
            "q": query,
            "b": "",
            "l": region,
            "kl": region,
        }
        if offset > 0:
            payload["s"] = str(offset)
            payload["dc"] = str(offset + 1)

        response = await self._request(
            "POST",
            self.search_url,
            data=payload,
            headers={"User-Agent": ua.random},
        )
        if not response.content:
            return []
        return self._extract_results(response.text)

    async def suggest(self, query: str) -> list[str]:
        data = await self._request_json(
            "GET",
            self.suggest_url,
            params={"q": query, "kl": "wt-wt"},
            headers={"User-Agent": ua.random},
        )
        if not isinstance(data, list):
            return []
        return [
            item["phrase"]
            for item in data
            if isinstance(item, dict) and isinstance(item.get("phrase"), str)
        ]

    def _extract_results(self, html_text: str) -> list[RawResult]:
        tree = html.fromstring(html_text)
        items = tree.xpath("//div[contains(@class, 'body')]")
        results: list[RawResult] = []

        for item in items:
            title = normalize_text(" ".join(item.xpath(".//h2//text()")))
            href_parts = item.xpath("./a/@href")
            url = _resolve_href(href_parts[0].strip()) if href_parts else ""
            snippet = normalize_text(" ".join(item.xpath("./a//text()")))

            if not url or url.startswith("https://duckduckgo.com/y.js?"):
                continue

            results.append(RawResult(title=title, url=url, snippet=snippet or None))

        return results


def _resolve_href(href: str) -> str:
    # Redirect links look like //duckduckgo.com/l/?uddg=<encoded target>
    if "duckduckgo.com/l/" in href:
        target = parse_qs(urlsplit(href).query).get("uddg")
        if target:
            return target[0]
        return ""
    return href
