from __future__ import annotations

import logging
from typing import Any

import httpx

# Ensure providers are registered
import polysearch.providers  # noqa: F401
from polysearch.base import ProviderBinding, SearchProvider
from polysearch.config import ProviderSpec, Settings
from polysearch.engine import AggregationEngine
from polysearch.registry import get_provider

logger = logging.getLogger(__name__)


def build_provider(
    spec: ProviderSpec,
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> SearchProvider:
    provider_cls = get_provider(spec.name)
    kwargs: dict[str, Any] = {"timeout_seconds": settings.http_timeout_seconds}

    if spec.name == "ddgs":
        return provider_cls(**kwargs)
    if spec.name == "http":
        if not settings.remote_base_url:
            raise ValueError("The http provider requires POLYSEARCH_REMOTE_BASE_URL")
        kwargs["base_url"] = settings.remote_base_url
    if spec.name == "npm":
        kwargs["registry"] = settings.npm_registry

    return provider_cls(http_client=http_client, **kwargs)


def build_engine(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> AggregationEngine:
    bindings = [
        ProviderBinding(
            provider=build_provider(spec, settings, http_client),
            weight=spec.weight,
            timeout_ms=spec.timeout_ms,
        )
        for spec in settings.providers
    ]
    logger.info(
        "engine_configured providers=%s cache_enabled=%s max_rounds=%d",
        ",".join(f"{spec.name}:{spec.weight:g}" for spec in settings.providers),
        not settings.cache_disabled,
        settings.max_rounds,
    )
    return AggregationEngine(
        bindings,
        cache=settings.cache_config,
        max_rounds=settings.max_rounds,
        debug_logging=settings.debug_logging,
    )
