"""LLM module - provider gateway over the generation backends."""

from .base import LLMProvider, LLMMessage, Chunk, GenerationResult
from .gateway import ProviderGateway, GatewayConfig, GenerationRequest
from .openai_provider import OpenAIProvider
from .openrouter_provider import OpenRouterProvider
from .factory import create_llm_provider, build_gateway

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'Chunk',
    'GenerationResult',
    'ProviderGateway',
    'GatewayConfig',
    'GenerationRequest',
    'OpenAIProvider',
    'OpenRouterProvider',
    'create_llm_provider',
    'build_gateway',
]
