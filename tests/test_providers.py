from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from ddgs.exceptions import RatelimitException

from polysearch.base import ProviderBinding, ProviderError, RawResult, SearchRequest
from polysearch.engine import AggregationEngine
from polysearch.providers import ddgs_provider
from polysearch.providers.ddgs_provider import DdgsProvider
from polysearch.providers.duckduckgo import DuckDuckGoProvider
from polysearch.providers.http import HttpProvider
from polysearch.providers.npm import NpmProvider
from polysearch.providers.wikipedia import WikipediaProvider

_DDG_HTML = """
<html><body>
<div class="result results_links web-result">
  <div class="links_main links_deep result__body">
    <h2 class="result__title">
      <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fdocs%3Fa%3D1&amp;rut=x">Example &amp; Docs</a>
    </h2>
    <a class="result__snippet" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fdocs%3Fa%3D1&amp;rut=x">The <b>example</b> docs</a>
  </div>
</div>
<div class="result results_links result--ad">
  <div class="links_main links_deep result__body">
    <h2 class="result__title"><a class="result__a" href="https://duckduckgo.com/y.js?ad_domain=ads.example">Ad</a></h2>
    <a class="result__snippet" href="https://duckduckgo.com/y.js?ad_domain=ads.example">Buy now</a>
  </div>
</div>
<div class="result results_links web-result">
  <div class="links_main links_deep result__body">
    <h2 class="result__title"><a class="result__a" href="https://direct.example/">Direct</a></h2>
    <a class="result__snippet" href="https://direct.example/">Direct link</a>
  </div>
</div>
</body></html>
"""


def _npm_payload() -> dict[str, Any]:
    return {
        "objects": [
            {
                "package": {
                    "name": "react",
                    "version": "18.3.1",
                    "description": "UI library",
                    "links": {"npm": "https://www.npmjs.com/package/react"},
                },
                "score": {
                    "final": 0.9,
                    "detail": {"quality": 0.95, "popularity": 0.9, "maintenance": 1},
                },
            },
            {"package": {"name": "react-dom"}},
            {"package": {"description": "missing name"}},
        ],
        "total": 1234,
    }


@pytest.mark.anyio
async def test_npm_search_maps_packages() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/-/v1/search"
        params = request.url.params
        assert params["text"] == "react"
        assert params["size"] == "5"
        assert params["from"] == "5"
        assert params["quality"] == "0.8"
        return httpx.Response(200, json=_npm_payload())

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = NpmProvider(http_client=client)
        response = await provider.search(
            "react", page=2, per_page=5, extra={"quality": "0.8"}
        )

    assert response.total_results == 1234
    assert [result.title for result in response.results] == ["react", "react-dom"]
    first = response.results[0]
    assert first.url == "https://www.npmjs.com/package/react"
    assert first.snippet == (
        "UI library\nVersion: 18.3.1\n"
        "Quality: 95.0%\nPopularity: 90.0%\nMaintenance: 100.0%"
    )
    assert response.results[1] == RawResult(
        title="react-dom",
        url="https://www.npmjs.com/package/react-dom",
        snippet=None,
    )


@pytest.mark.anyio
async def test_npm_search_rejects_malformed_payload() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = NpmProvider(http_client=client)
        with pytest.raises(ProviderError, match="missing objects"):
            await provider.search("react")


@pytest.mark.anyio
async def test_npm_http_error_raises_provider_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = NpmProvider(http_client=client)
        with pytest.raises(ProviderError, match="HTTP error 503"):
            await provider.search("react")


@pytest.mark.anyio
async def test_npm_suggest_returns_package_names() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["size"] == "5"
        return httpx.Response(200, json=_npm_payload())

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = NpmProvider(http_client=client)
        assert await provider.suggest("rea") == ["react", "react-dom"]


@pytest.mark.anyio
async def test_transport_error_raises_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = NpmProvider(http_client=client)
        with pytest.raises(ProviderError, match="request failed"):
            await provider.search("react")


@pytest.mark.anyio
async def test_wikipedia_search_maps_articles() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "de.wikipedia.org"
        params = request.url.params
        assert params["srsearch"] == "monty python"
        assert params["srlimit"] == "2"
        assert params["sroffset"] == "4"
        return httpx.Response(
            200,
            json={
                "query": {
                    "searchinfo": {"totalhits": 42},
                    "search": [
                        {
                            "title": "Monty Python",
                            "snippet": '<span class="searchmatch">Monty</span> Python &amp; co',
                        },
                        {"title": ""},
                    ],
                }
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = WikipediaProvider(http_client=client, lang="de")
        response = await provider.search("monty python", page=3, per_page=2)

    assert response.total_results == 42
    assert response.results == (
        RawResult(
            title="Monty Python",
            url="https://de.wikipedia.org/wiki/Monty_Python",
            snippet="Monty Python & co",
        ),
    )


@pytest.mark.anyio
async def test_wikipedia_suggest_reads_opensearch_titles() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["action"] == "opensearch"
        return httpx.Response(
            200,
            json=["pyth", ["Python", "Pythagoras"], ["", ""], ["u1", "u2"]],
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = WikipediaProvider(http_client=client)
        assert await provider.suggest("pyth") == ["Python", "Pythagoras"]


@pytest.mark.anyio
async def test_http_provider_forwards_paging_and_extras() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/search"
        assert request.headers["authorization"] == "Bearer upstream"
        params = request.url.params
        assert params["q"] == "python"
        assert params["page"] == "2"
        assert params["perPage"] == "3"
        assert json.loads(params["filters"]) == {"lang": "en"}
        return httpx.Response(
            200,
            json={
                "results": [
                    {"title": "Python", "url": "https://python.org", "snippet": "s"}
                ],
                "pagination": {"page": 2, "perPage": 3},
                "totalResults": 9,
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = HttpProvider(
            base_url="http://upstream:8002/",
            http_client=client,
            headers={"Authorization": "Bearer upstream"},
        )
        response = await provider.search(
            "python", page=2, per_page=3, extra={"filters": {"lang": "en"}}
        )

    assert response.total_results == 9
    assert response.results == (
        RawResult(title="Python", url="https://python.org", snippet="s"),
    )


@pytest.mark.anyio
async def test_http_provider_rejects_non_object_payload() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = HttpProvider(base_url="http://upstream", http_client=client)
        with pytest.raises(ProviderError):
            await provider.search("python")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload",
    [{"suggestions": ["a", "b", 3]}, ["a", "b"]],
)
async def test_http_provider_suggest_accepts_both_shapes(payload: Any) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/suggest"
        return httpx.Response(200, json=payload)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = HttpProvider(base_url="http://upstream", http_client=client)
        assert await provider.suggest("x") == ["a", "b"]


@pytest.mark.anyio
async def test_duckduckgo_parses_html_results() -> None:
    forms: list[dict[str, list[str]]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        forms.append(parse_qs(request.content.decode()))
        return httpx.Response(200, text=_DDG_HTML)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = DuckDuckGoProvider(http_client=client)
        response = await provider.search("example", page=2)

    assert forms[0]["q"] == ["example"]
    assert forms[0]["s"] == ["10"]
    assert forms[0]["dc"] == ["11"]
    assert response.results == (
        RawResult(
            title="Example & Docs",
            url="https://example.com/docs?a=1",
            snippet="The example docs",
        ),
        RawResult(
            title="Direct",
            url="https://direct.example/",
            snippet="Direct link",
        ),
    )


@pytest.mark.anyio
async def test_duckduckgo_truncates_to_per_page() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=_DDG_HTML)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = DuckDuckGoProvider(http_client=client)
        response = await provider.search("example", per_page=1)

    assert len(response.results) == 1


def _ddg_page(numbers: range) -> str:
    items = "".join(
        '<div class="result"><div class="links_main result__body">'
        f'<h2 class="result__title"><a href="https://r.example/{n}">Result {n}</a></h2>'
        f'<a class="result__snippet" href="https://r.example/{n}">Snippet {n}</a>'
        "</div></div>"
        for n in numbers
    )
    return f"<html><body>{items}</body></html>"


def _ddg_offset_handler(offsets: list[int]):
    # 10 results at offset 0, 15 from any later offset.
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        offset = int(form.get("s", ["0"])[0])
        offsets.append(offset)
        size = 10 if offset == 0 else 15
        return httpx.Response(200, text=_ddg_page(range(offset + 1, offset + size + 1)))

    return handler


@pytest.mark.anyio
async def test_duckduckgo_small_pages_do_not_skip_results() -> None:
    offsets: list[int] = []
    transport = httpx.MockTransport(_ddg_offset_handler(offsets))
    async with httpx.AsyncClient(transport=transport) as client:
        provider = DuckDuckGoProvider(http_client=client)
        first = await provider.search("example", page=1, per_page=5)
        second = await provider.search("example", page=2, per_page=5)

    assert offsets == [0, 5]
    assert [result.url for result in first.results + second.results] == [
        f"https://r.example/{n}" for n in range(1, 11)
    ]


@pytest.mark.anyio
async def test_duckduckgo_large_pages_fetch_until_full() -> None:
    offsets: list[int] = []
    transport = httpx.MockTransport(_ddg_offset_handler(offsets))
    async with httpx.AsyncClient(transport=transport) as client:
        provider = DuckDuckGoProvider(http_client=client)
        response = await provider.search("example", page=2, per_page=20)

    assert offsets == [20, 35]
    assert [result.url for result in response.results] == [
        f"https://r.example/{n}" for n in range(21, 41)
    ]


@pytest.mark.anyio
async def test_engine_pages_through_duckduckgo_without_gaps() -> None:
    offsets: list[int] = []
    transport = httpx.MockTransport(_ddg_offset_handler(offsets))
    async with httpx.AsyncClient(transport=transport) as client:
        engine = AggregationEngine(
            [ProviderBinding(DuckDuckGoProvider(http_client=client))]
        )
        response = await engine.search(
            SearchRequest(query="example", page=2, per_page=5)
        )

    assert offsets == [0, 5]
    assert [result.url for result in response.results] == [
        f"https://r.example/{n}" for n in range(6, 11)
    ]



@pytest.mark.anyio
async def test_duckduckgo_suggest_reads_phrases() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/ac/"
        return httpx.Response(200, json=[{"phrase": "python"}, {"other": 1}])

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        provider = DuckDuckGoProvider(http_client=client)
        assert await provider.suggest("pyt") == ["python"]


class _FakeDDGS:
    calls: list[tuple[str, dict[str, Any]]] = []
    error: Exception | None = None

    def __init__(self, *_args: object, **_kwargs: object) -> None:
        pass

    def __enter__(self) -> _FakeDDGS:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        return None

    def text(self, query: str, **kwargs: Any) -> list[dict[str, Any]]:
        _FakeDDGS.calls.append((query, kwargs))
        if _FakeDDGS.error is not None:
            raise _FakeDDGS.error
        return [
            {"title": "Title", "href": "https://example.com", "body": "snippet"},
            {"title": " ", "url": "https://fallback.example", "body": ""},
            {"title": "No link"},
        ]


@pytest.fixture
def fake_ddgs(monkeypatch: pytest.MonkeyPatch) -> type[_FakeDDGS]:
    _FakeDDGS.calls = []
    _FakeDDGS.error = None
    monkeypatch.setattr(ddgs_provider, "DDGS", _FakeDDGS)
    return _FakeDDGS


def test_ddgs_search_normalizes_results(fake_ddgs: type[_FakeDDGS]) -> None:
    provider = DdgsProvider(backend="bing", region="uk-en")

    response = provider.search("python", page=2, per_page=5, extra={"timelimit": "w"})

    query, kwargs = fake_ddgs.calls[0]
    assert query == "python"
    assert kwargs["backend"] == "bing"
    assert kwargs["region"] == "uk-en"
    assert kwargs["page"] == 2
    assert kwargs["max_results"] == 5
    assert kwargs["timelimit"] == "w"
    assert response.results == (
        RawResult(title="Title", url="https://example.com", snippet="snippet"),
        RawResult(title="Untitled", url="https://fallback.example", snippet=None),
    )


def test_ddgs_rate_limit_raises_provider_error(fake_ddgs: type[_FakeDDGS]) -> None:
    fake_ddgs.error = RatelimitException("429")
    provider = DdgsProvider()

    with pytest.raises(ProviderError, match="rate-limited"):
        provider.search("python")
