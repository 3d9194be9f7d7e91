from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import httpx

from polysearch.base import DEFAULT_PER_PAGE, ProviderError, ProviderResponse
from polysearch.providers._http import HttpProviderMixin
from polysearch.registry import register


@register
class HttpProvider(HttpProviderMixin):
    """Delegate to another polysearch server over its ``/search`` and ``/suggest`` API."""

    name = "http"

    def __init__(
        self,
        *,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        if not base_url:
            raise ValueError("HttpProvider requires a base_url")
        self._init_http(http_client, timeout_seconds=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})

    @property
    def cache_scope(self) -> str:
        return self._base_url

    async def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse:
        params: dict[str, str] = {
            "q": query,
            "page": str(page),
            "perPage": str(per_page),
        }
        for key, value in (extra or {}).items():
            if value is None or key in params:
                continue
            params[key] = (
                json.dumps(value) if isinstance(value, (dict, list)) else str(value)
            )

        data = await self._request_json(
            "GET", f"{self._base_url}/search", params=params, headers=self._headers
        )
        try:
            return ProviderResponse.from_payload(data)
        except TypeError as exc:
            raise ProviderError(self.name, str(exc)) from exc

    async def suggest(self, query: str) -> list[str]:
        data = await self._request_json(
            "GET",
            f"{self._base_url}/suggest",
            params={"q": query},
            headers=self._headers,
        )
        # Both {"suggestions": [...]} and a bare list are accepted.
        if isinstance(data, dict):
            data = data.get("suggestions")
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, str)]
