"""
Image Hub generator clients and the provider registry.
"""
from typing import Dict, List, Optional

from ..config import HubSettings
from ..errors import UnsupportedProviderError
from .base import BaseGenerator, GeneratorResult, UpstreamClient
from .gemini import GeminiClient
from .generators import DirectGenerator, ProxyGenerator, UnavailableGenerator
from .openai import OpenAIClient
from .stability import StabilityClient

# Upstream API families, keyed by the name the proxy route accepts
UPSTREAM_CLIENTS = {
    "openai": OpenAIClient,
    "gemini": GeminiClient,
    "stability": StabilityClient,
}

# Dashboard provider -> upstream family, None when not wired
PROVIDER_FAMILIES = {
    "Gemini": "gemini",
    "DALL·E (OpenAI)": "openai",
    "Stability AI": "stability",
    "ChatGPT": "openai",
    "Bing AI": None,
    "Leonardo": None,
    "Gemini Banana": "gemini",
}

UNAVAILABLE_MESSAGES = {
    "Bing AI": "Bing Image API not available",
    "Leonardo": "Leonardo not wired yet",
}


def get_upstream_client(family: str, timeout: Optional[float] = None) -> UpstreamClient:
    """
    Factory function to get an upstream client.

    Args:
        family: 'openai', 'gemini' or 'stability'
        timeout: Request timeout in seconds, None to wait indefinitely

    Returns:
        UpstreamClient instance
    """
    client_cls = UPSTREAM_CLIENTS.get((family or "").lower())
    if client_cls is None:
        raise UnsupportedProviderError(family)
    return client_cls(timeout=timeout)


class ProviderRegistry:
    """Lookup table from provider name to generator. No orchestration."""

    def __init__(self, generators: Optional[Dict[str, BaseGenerator]] = None):
        self._generators: Dict[str, BaseGenerator] = dict(generators or {})

    def register(self, provider: str, generator: BaseGenerator):
        self._generators[provider] = generator

    def get(self, provider: str) -> BaseGenerator:
        try:
            return self._generators[provider]
        except KeyError:
            raise UnsupportedProviderError(provider) from None

    def __contains__(self, provider: str) -> bool:
        return provider in self._generators

    def names(self) -> List[str]:
        return list(self._generators)


def build_registry(settings: HubSettings) -> ProviderRegistry:
    """Register the dashboard providers, wired directly or through a proxy."""
    registry = ProviderRegistry()
    for provider, family in PROVIDER_FAMILIES.items():
        if family is None:
            generator = UnavailableGenerator(UNAVAILABLE_MESSAGES[provider])
        elif settings.proxy_url:
            generator = ProxyGenerator(family, settings.proxy_url, settings.image_size,
                                       settings.upstream_timeout)
        else:
            generator = DirectGenerator(
                get_upstream_client(family, settings.upstream_timeout), settings.image_size
            )
        registry.register(provider, generator)
    return registry


__all__ = [
    "BaseGenerator",
    "GeneratorResult",
    "UpstreamClient",
    "ProviderRegistry",
    "build_registry",
    "get_upstream_client",
    "DirectGenerator",
    "ProxyGenerator",
    "UnavailableGenerator",
    "PROVIDER_FAMILIES",
]
