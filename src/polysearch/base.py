from __future__ import annotations

from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from polysearch.cache import CacheConfig

DEFAULT_PER_PAGE = 10


class ProviderError(Exception):
    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


@dataclass(frozen=True)
class RawResult:
    title: str
    url: str
    snippet: str | None = None


@dataclass(frozen=True)
class ProviderResponse:
    results: tuple[RawResult, ...] = ()
    total_results: int | None = None

    @classmethod
    def from_payload(cls, payload: object) -> ProviderResponse:
        """Coerce an adapter return value into a validated ProviderResponse.

        Adapters may hand back a ProviderResponse or a plain mapping shaped
        like ``{"results": [...], "totalResults": n}``. Anything else is a
        malformed payload and raises TypeError.

        Malformed entries are kept as blank placeholders so later entries keep
        their provider position; the merge step drops blank URLs.
        """
        if isinstance(payload, ProviderResponse):
            raw_results: object = payload.results
            total: object = payload.total_results
        elif isinstance(payload, Mapping):
            raw_results = payload.get("results") or ()
            total = payload.get("totalResults", payload.get("total_results"))
        else:
            raise TypeError(f"unsupported provider payload {type(payload).__name__}")

        if not isinstance(raw_results, (list, tuple)):
            raise TypeError("provider payload results must be a list")

        return cls(
            results=tuple(_coerce_raw_result(item) for item in raw_results),
            total_results=(
                total
                if isinstance(total, int) and not isinstance(total, bool)
                else None
            ),
        )


@dataclass(frozen=True)
class WeightedResult:
    title: str
    url: str
    snippet: str | None
    weight: float
    rank: int
    sources: tuple[str, ...]

    def __post_init__(self) -> None:
        if self.rank < 1:
            raise ValueError(f"rank must be >= 1, got {self.rank}")

    @property
    def score(self) -> float:
        return self.rank / self.weight


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str | None = None
    sources: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"title": self.title, "url": self.url}
        if self.snippet is not None:
            data["snippet"] = self.snippet
        data["sources"] = list(self.sources)
        return data


@dataclass(frozen=True)
class Pagination:
    page: int
    per_page: int


@dataclass(frozen=True)
class AggregateResponse:
    results: tuple[SearchResult, ...]
    pagination: Pagination
    total_results: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "results": [result.to_dict() for result in self.results],
            "pagination": {
                "page": self.pagination.page,
                "perPage": self.pagination.per_page,
            },
        }
        if self.total_results is not None:
            data["totalResults"] = self.total_results
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AggregateResponse:
        pagination = data.get("pagination") or {}
        return cls(
            results=tuple(
                SearchResult(
                    title=str(item.get("title") or ""),
                    url=str(item.get("url") or ""),
                    snippet=_as_optional_str(item.get("snippet")),
                    sources=tuple(str(name) for name in item.get("sources") or ()),
                )
                for item in data.get("results") or ()
                if isinstance(item, Mapping)
            ),
            pagination=Pagination(
                page=int(pagination.get("page", 1)),
                per_page=int(pagination.get("perPage", DEFAULT_PER_PAGE)),
            ),
            total_results=data.get("totalResults"),
        )


@dataclass(frozen=True)
class SearchRequest:
    query: str
    page: int = 1
    per_page: int | None = None
    cache_override: CacheConfig | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.per_page is not None and self.per_page < 1:
            raise ValueError(f"per_page must be >= 1, got {self.per_page}")


@runtime_checkable
class SearchProvider(Protocol):
    name: str

    def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> ProviderResponse | Awaitable[ProviderResponse]: ...


@runtime_checkable
class SuggestProvider(Protocol):
    name: str

    def suggest(self, query: str) -> list[str] | Awaitable[list[str]]: ...


@dataclass(frozen=True)
class ProviderBinding:
    provider: SearchProvider
    weight: float = 1.0
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise ValueError(f"weight must be > 0, got {self.weight}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")

    @property
    def name(self) -> str:
        return provider_name(self.provider)


def provider_name(provider: object) -> str:
    name = getattr(provider, "name", None)
    if isinstance(name, str) and name.strip():
        return name.strip()
    return "unknown"


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _coerce_raw_result(item: object) -> RawResult:
    if isinstance(item, RawResult):
        title, url, snippet = item.title, item.url, item.snippet
    elif isinstance(item, Mapping):
        title, url, snippet = item.get("title"), item.get("url"), item.get("snippet")
    else:
        return RawResult(title="", url="")

    return RawResult(
        title=title if isinstance(title, str) else "",
        url=url if isinstance(url, str) else "",
        snippet=_as_optional_str(snippet),
    )
