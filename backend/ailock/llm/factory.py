"""
LLM Provider Factory - Creates the configured provider instances and gateway.
"""

from typing import Optional, Dict
from .base import LLMProvider
from .gateway import ProviderGateway, GatewayConfig
from .openai_provider import OpenAIProvider
from .openrouter_provider import OpenRouterProvider


def create_llm_provider(
    provider: str = "openrouter",
    api_key: Optional[str] = "",
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> Optional[LLMProvider]:
    """
    Create an LLM provider instance based on configuration.

    Args:
        provider: Provider name ("openrouter" or "openai")
        api_key: API key for the provider
        model: Model name (uses provider default if not specified)
        base_url: Custom base URL (uses provider default if not specified)
        **kwargs: Additional provider-specific parameters

    Returns:
        LLMProvider instance, or None if api_key is not configured
    """
    if not api_key:
        return None

    params = {"api_key": api_key}
    if model:
        params["model"] = model
    if base_url:
        params["base_url"] = base_url
    params.update(kwargs)

    if provider == "openrouter":
        return OpenRouterProvider(**params)
    elif provider == "openai":
        return OpenAIProvider(**params)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def build_gateway(settings) -> ProviderGateway:
    """Build the gateway with every backend that has credentials."""
    config = GatewayConfig.from_settings(settings)
    common = {
        "default_temperature": settings.llm_temperature,
        "default_max_tokens": settings.llm_max_tokens,
        "timeout": settings.llm_timeout_seconds,
    }

    candidates = {
        "openrouter": create_llm_provider(
            "openrouter",
            api_key=settings.openrouter_api_key,
            model=settings.llm_model_researcher,
            base_url=settings.openrouter_base_url,
            models={mode: settings.model_for_mode(mode) for mode in ("researcher", "creator", "analyst")},
            referer=settings.openrouter_referer,
            title=settings.openrouter_title,
            **common,
        ),
        "openai": create_llm_provider(
            "openai",
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            **common,
        ),
    }
    providers: Dict[str, LLMProvider] = {name: p for name, p in candidates.items() if p is not None}
    return ProviderGateway(config, providers)
