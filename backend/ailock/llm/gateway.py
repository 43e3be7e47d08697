"""
Provider Gateway - Single entry point for text generation.

The gateway hides which backend answered. It assembles the prompt, picks the
configured default backend, fails over to the secondary one when the default
is unconfigured or unreachable before producing output, and bounds every call
with a wall-clock timeout.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable, Awaitable

from ..core.exceptions import (
    ProviderError, ProviderUnavailableError, ProviderUnreachableError, ProviderTimeoutError,
)
from ..models.session import Mode
from ..models.user import UserContext
from .base import LLMProvider, LLMMessage, Chunk, GenerationResult
from .prompts import assemble_messages

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[Chunk], Awaitable[None]]


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable gateway configuration, built once at startup."""
    default_provider: str = "openrouter"
    enable_streaming: bool = True
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    log_calls: bool = True

    @classmethod
    def from_settings(cls, settings) -> "GatewayConfig":
        return cls(
            default_provider=settings.llm_default_provider,
            enable_streaming=settings.llm_enable_streaming,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            timeout_seconds=settings.llm_timeout_seconds,
            log_calls=settings.log_llm_calls,
        )


@dataclass
class GenerationRequest:
    """Everything one generation needs, apart from the system prompt."""
    mode: Mode
    history: List[LLMMessage]
    user_context: Optional[UserContext] = None
    session_id: Optional[str] = None


@dataclass
class _Attempt:
    delivered: int = 0
    parts: List[str] = field(default_factory=list)


class ProviderGateway:
    """Uniform generate() over the configured backends."""

    def __init__(self, config: GatewayConfig, providers: Dict[str, LLMProvider]):
        self.config = config
        self.providers = dict(providers)

    def ordered_providers(self) -> List[LLMProvider]:
        """Default backend first, then the others in registration order."""
        ordered = []
        default = self.providers.get(self.config.default_provider)
        if default is not None:
            ordered.append(default)
        ordered.extend(p for name, p in self.providers.items() if name != self.config.default_provider)
        return ordered

    async def generate(
        self,
        request: GenerationRequest,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> GenerationResult:
        """
        Produce one assistant reply.

        Args:
            request: mode, history and user context for this turn
            on_chunk: awaited for every non-empty text chunk, in order.
                When omitted (or streaming is disabled) the blocking
                endpoint is used and no chunks are produced.

        Returns:
            GenerationResult whose content equals the concatenation of
            every chunk passed to ``on_chunk``.

        Raises:
            ProviderUnavailableError: no backend configured
            ProviderTimeoutError: wall-clock limit exceeded
            ProviderError: any other upstream failure
        """
        backends = self.ordered_providers()
        if not backends:
            raise ProviderUnavailableError("No LLM provider configured")

        messages = assemble_messages(request.mode, request.history, request.user_context)
        last_error: Optional[ProviderError] = None

        for provider in backends:
            attempt = _Attempt()
            start_time = time.time()
            try:
                result = await asyncio.wait_for(
                    self._call(provider, request.mode, messages, on_chunk, attempt),
                    timeout=self.config.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.warning(
                    f"Generation timed out after {self.config.timeout_seconds}s",
                    extra={"extra_fields": {
                        "provider": provider.name,
                        "session_id": request.session_id,
                        "chunks_delivered": attempt.delivered,
                    }}
                )
                raise ProviderTimeoutError(
                    f"Generation exceeded {self.config.timeout_seconds}s", provider=provider.name
                ) from e
            except ProviderUnreachableError as e:
                if attempt.delivered:
                    raise ProviderError(str(e), provider=provider.name) from e
                last_error = e
                logger.warning(
                    f"Provider {provider.name} unreachable, trying next backend",
                    extra={"extra_fields": {
                        "provider": provider.name,
                        "session_id": request.session_id,
                        "duration_ms": round((time.time() - start_time) * 1000, 2),
                    }}
                )
            except ProviderError:
                raise
            except Exception as e:
                logger.error(f"Provider {provider.name} raised unexpectedly: {e}", exc_info=True)
                raise ProviderError(str(e), provider=provider.name) from e
            else:
                if self.config.log_calls:
                    logger.info(
                        f"LLM call completed: {result.provider_id}/{result.model_id}",
                        extra={"extra_fields": {
                            "provider": result.provider_id,
                            "model": result.model_id,
                            "session_id": request.session_id,
                            "chunks_delivered": attempt.delivered,
                            "usage": result.usage,
                            "duration_ms": round((time.time() - start_time) * 1000, 2),
                        }}
                    )
                return result

        raise last_error

    async def _call(
        self,
        provider: LLMProvider,
        mode: Mode,
        messages: List[LLMMessage],
        on_chunk: Optional[ChunkCallback],
        attempt: _Attempt,
    ) -> GenerationResult:
        model = provider.model_for(Mode(mode).value)
        streaming = on_chunk is not None and self.config.enable_streaming and provider.supports_streaming

        if not streaming:
            return await provider.chat_completion(
                messages, model=model,
                temperature=self.config.temperature, max_tokens=self.config.max_tokens,
            )

        usage: Dict[str, int] = {}
        stream = provider.chat_completion_stream(
            messages, model=model,
            temperature=self.config.temperature, max_tokens=self.config.max_tokens,
        )
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                if chunk.is_final:
                    usage = chunk.usage or {}
                    continue
                if not chunk.text:
                    continue
                attempt.parts.append(chunk.text)
                attempt.delivered += 1
                await on_chunk(chunk)

        return GenerationResult(
            content="".join(attempt.parts),
            model_id=model,
            provider_id=provider.name,
            usage=usage,
        )

    async def is_healthy(self) -> bool:
        """Round-trip a tiny prompt through the default backend chain."""
        try:
            result = await self.generate(GenerationRequest(
                mode=Mode.RESEARCHER,
                history=[LLMMessage.text("user", "Hello")],
            ))
            return bool(result.content)
        except ProviderError as e:
            logger.warning(f"LLM health check failed: {e}")
            return False

    def describe(self) -> Dict[str, object]:
        return {
            "default_provider": self.config.default_provider,
            "configured_providers": list(self.providers.keys()),
            "streaming": self.config.enable_streaming,
        }
