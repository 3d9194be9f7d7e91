from __future__ import annotations

from typing import Any

import httpx

from polysearch.base import ProviderError

DEFAULT_TIMEOUT_SECONDS = 10.0


class HttpProviderMixin:
    """Shared httpx plumbing for adapters that talk to JSON/HTML endpoints.

    Adapters either receive the app's shared ``httpx.AsyncClient`` or own a
    private one, which ``aclose`` releases.
    """

    name: str

    def _init_http(
        self,
        http_client: httpx.AsyncClient | None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout_seconds,
            headers=headers,
            follow_redirects=True,
        )
        self._timeout_seconds = timeout_seconds

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        kwargs.setdefault("timeout", self._timeout_seconds)
        try:
            response = await self._http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(self.name, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP error {response.status_code}")
        return response

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "invalid JSON payload") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()
