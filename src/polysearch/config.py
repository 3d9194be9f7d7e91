from __future__ import annotations

import os
from dataclasses import dataclass

from polysearch.cache import DEFAULT_MAX_ITEMS, DEFAULT_TTL_SECONDS, CacheConfig
from polysearch.engine import MAX_ROUNDS
from polysearch.providers.npm import DEFAULT_REGISTRY

DEFAULT_PROVIDERS = "duckduckgo"


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    weight: float = 1.0
    timeout_ms: int | None = None

    @classmethod
    def parse(cls, value: str) -> ProviderSpec:
        """Parse ``name[:weight[:timeout_ms]]``."""
        parts = [part.strip() for part in value.split(":")]
        if not parts[0] or len(parts) > 3:
            raise RuntimeError(f"Invalid provider spec '{value}'")

        try:
            weight = float(parts[1]) if len(parts) > 1 and parts[1] else 1.0
            timeout_ms = int(parts[2]) if len(parts) > 2 and parts[2] else None
        except ValueError as exc:
            raise RuntimeError(f"Invalid provider spec '{value}'") from exc

        if weight <= 0:
            raise RuntimeError(f"Provider weight must be > 0 in '{value}'")
        if timeout_ms is not None and timeout_ms <= 0:
            raise RuntimeError(f"Provider timeout must be > 0 in '{value}'")

        return cls(name=parts[0].lower(), weight=weight, timeout_ms=timeout_ms)


@dataclass(frozen=True)
class Settings:
    providers: tuple[ProviderSpec, ...] = (ProviderSpec(DEFAULT_PROVIDERS),)
    cache_disabled: bool = False
    cache_ttl_seconds: int = DEFAULT_TTL_SECONDS
    cache_max_items: int = DEFAULT_MAX_ITEMS
    default_per_page: int | None = None
    max_rounds: int = MAX_ROUNDS
    debug_logging: bool = False
    http_timeout_seconds: float = 10.0
    api_token: str | None = None
    host: str = "127.0.0.1"
    port: int = 8002
    remote_base_url: str | None = None
    npm_registry: str = DEFAULT_REGISTRY

    @property
    def cache_config(self) -> CacheConfig:
        if self.cache_disabled:
            return CacheConfig.disabled()
        return CacheConfig(
            ttl_seconds=self.cache_ttl_seconds,
            max_items=self.cache_max_items,
            per_page=self.default_per_page,
        )

    @classmethod
    def from_env(cls) -> Settings:
        providers = _parse_providers(os.getenv("POLYSEARCH_PROVIDERS"))

        return cls(
            providers=providers,
            cache_disabled=_parse_bool(os.getenv("POLYSEARCH_CACHE_DISABLED")),
            cache_ttl_seconds=_parse_positive_int(
                "POLYSEARCH_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS
            ),
            cache_max_items=_parse_positive_int(
                "POLYSEARCH_CACHE_MAX_ITEMS", DEFAULT_MAX_ITEMS
            ),
            default_per_page=_parse_optional_positive_int("POLYSEARCH_DEFAULT_PER_PAGE"),
            max_rounds=_parse_positive_int("POLYSEARCH_MAX_ROUNDS", MAX_ROUNDS),
            debug_logging=_parse_bool(os.getenv("POLYSEARCH_DEBUG_LOGGING")),
            http_timeout_seconds=float(
                os.getenv("POLYSEARCH_HTTP_TIMEOUT_SECONDS", "10")
            ),
            api_token=os.getenv("POLYSEARCH_API_TOKEN") or None,
            host=os.getenv("POLYSEARCH_HOST", "127.0.0.1"),
            port=int(os.getenv("POLYSEARCH_PORT", "8002")),
            remote_base_url=os.getenv("POLYSEARCH_REMOTE_BASE_URL") or None,
            npm_registry=os.getenv("POLYSEARCH_NPM_REGISTRY", DEFAULT_REGISTRY),
        )


def _parse_providers(value: str | None) -> tuple[ProviderSpec, ...]:
    if value is None or not value.strip():
        value = DEFAULT_PROVIDERS

    specs: list[ProviderSpec] = []
    seen: set[str] = set()
    for raw_item in value.split(","):
        item = raw_item.strip()
        if not item:
            continue
        spec = ProviderSpec.parse(item)
        if spec.name in seen:
            raise RuntimeError(f"Duplicate provider '{spec.name}' in POLYSEARCH_PROVIDERS")
        seen.add(spec.name)
        specs.append(spec)

    if not specs:
        raise RuntimeError("POLYSEARCH_PROVIDERS must name at least one provider")
    return tuple(specs)


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_positive_int(key: str, default: int) -> int:
    parsed = _parse_optional_positive_int(key)
    return default if parsed is None else parsed


def _parse_optional_positive_int(key: str) -> int | None:
    value = os.getenv(key)
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid {key}: expected an integer") from exc
    if parsed < 1:
        raise RuntimeError(f"Invalid {key}: must be >= 1")
    return parsed
