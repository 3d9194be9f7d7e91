from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from polysearch.base import DEFAULT_PER_PAGE, ProviderError, ProviderResponse, RawResult
from polysearch.providers._http import DEFAULT_TIMEOUT_SECONDS, HttpProviderMixin
from polysearch.registry import register

DEFAULT_REGISTRY = "https://registry.npmjs.org"
_MAX_PAGE_SIZE = 250
_SCORING_OPTIONS = ("quality", "popularity", "maintenance")


@register
class NpmProvider(HttpProviderMixin):
    """Package search against an npm registry's ``/-/v1/search`` API."""

    name = "npm"

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        registry: str = DEFAULT_REGISTRY,
        endpoint: str = "/-/v1/search",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._init_http(http_client, timeout_seconds=timeout_seconds)
        self._registry = registry.rstrip("/")
        self._search_endpoint = f"{self._registry}{endpoint}"

    @property
    def cache_scope(self) -> str:
        return self._registry

    async def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse:
        size = min(per_page, _MAX_PAGE_SIZE)
        params: dict[str, str] = {
            "text": query,
            "size": str(size),
            "from": str((page - 1) * size),
        }
        for option in _SCORING_OPTIONS:
            value = (extra or {}).get(option)
            if value is not None:
                params[option] = str(value)

        data = await self._request_json(
            "GET",
            self._search_endpoint,
            params=params,
            headers={"Accept": "application/json"},
        )
        objects = data.get("objects") if isinstance(data, dict) else None
        if not isinstance(objects, list):
            raise ProviderError(self.name, "search payload is missing objects")

        results = [
            result
            for result in (_package_result(item) for item in objects)
            if result is not None
        ]
        total = data.get("total")
        return ProviderResponse(
            results=tuple(results),
            total_results=total if isinstance(total, int) else None,
        )

    async def suggest(self, query: str) -> list[str]:
        data = await self._request_json(
            "GET",
            self._search_endpoint,
            params={"text": query, "size": "5"},
            headers={"Accept": "application/json"},
        )
        objects = data.get("objects") if isinstance(data, dict) else None
        if not isinstance(objects, list):
            return []

        names: list[str] = []
        for item in objects:
            package = item.get("package") if isinstance(item, dict) else None
            if isinstance(package, dict) and isinstance(package.get("name"), str):
                names.append(package["name"])
        return names


def _package_result(item: object) -> RawResult | None:
    if not isinstance(item, dict):
        return None
    package = item.get("package")
    if not isinstance(package, dict):
        return None

    name = package.get("name")
    if not isinstance(name, str) or not name:
        return None
    links = package.get("links")
    url = links.get("npm") if isinstance(links, dict) else None
    if not url:
        url = f"https://www.npmjs.com/package/{name}"

    lines = [str(package.get("description") or "").strip()]
    version = package.get("version")
    if version:
        lines.append(f"Version: {version}")
    score = item.get("score")
    detail = score.get("detail") if isinstance(score, dict) else None
    if isinstance(detail, dict):
        for label in _SCORING_OPTIONS:
            value = detail.get(label)
            if isinstance(value, (int, float)):
                lines.append(f"{label.capitalize()}: {value * 100:.1f}%")

    snippet = "\n".join(line for line in lines if line)
    return RawResult(title=str(name), url=str(url), snippet=snippet or None)
