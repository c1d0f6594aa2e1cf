"""Vendor registry with pricing metadata.

Adding a vendor means writing a BaseProvider subclass and listing it here.
"""
from typing import Dict, List, Optional, Type

import httpx

from app.services.llm.anthropic_provider import AnthropicProvider
from app.services.llm.base import BaseProvider, ProviderConfig
from app.services.llm.google_provider import GoogleProvider
from app.services.llm.ollama_provider import OllamaProvider
from app.services.llm.openai_provider import OpenAIProvider

PROVIDERS: Dict[str, Type[BaseProvider]] = {
    cls.config.id: cls
    for cls in (AnthropicProvider, OpenAIProvider, GoogleProvider, OllamaProvider)
}


def get_provider_config(provider_id: Optional[str]) -> Optional[ProviderConfig]:
    """Metadata for a registered vendor, or None."""
    cls = PROVIDERS.get(provider_id or "")
    return cls.config if cls else None


def list_provider_configs() -> List[ProviderConfig]:
    """All registered vendors in registration order."""
    return [cls.config for cls in PROVIDERS.values()]


def calculate_cost(provider_id: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of a call; unknown vendors cost nothing."""
    config = get_provider_config(provider_id)
    if config is None:
        return 0.0
    return config.calculate_cost(input_tokens, output_tokens)


def create_provider(
    provider_id: str,
    credential: str,
    http_client: Optional[httpx.AsyncClient] = None,
) -> BaseProvider:
    """
    Instantiate a vendor adapter.

    Raises:
        KeyError: If the vendor is not registered
    """
    return PROVIDERS[provider_id](credential, http_client=http_client)
