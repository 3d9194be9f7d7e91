from __future__ import annotations

from typing import TypeVar

_PROVIDERS: dict[str, type] = {}

ProviderT = TypeVar("ProviderT", bound=type)


def register(cls: ProviderT) -> ProviderT:
    """Decorator to register a provider adapter under its ``name`` attribute."""
    name = getattr(cls, "name", None)
    if not isinstance(name, str) or not name:
        raise ValueError(f"Provider class {cls.__name__} must define a name")
    _PROVIDERS[name] = cls
    return cls


def get_provider(name: str) -> type:
    """Get a provider class by name."""
    if name not in _PROVIDERS:
        raise ValueError(
            f"Provider '{name}' not found. Available: {list(_PROVIDERS.keys())}"
        )
    return _PROVIDERS[name]


def list_providers() -> list[str]:
    """List available provider names."""
    return list(_PROVIDERS.keys())


def get_all_providers() -> dict[str, type]:
    return _PROVIDERS.copy()
