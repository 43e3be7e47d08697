"""
OpenAI LLM Provider.
Secondary backend built on the official async SDK.
"""

import logging
import time
from typing import Optional, List, Dict, AsyncGenerator

import openai
from openai import AsyncOpenAI

from ..core.exceptions import ProviderError, ProviderUnreachableError, IncompleteStreamError
from .base import LLMProvider, LLMMessage, Chunk, GenerationResult, normalize_usage

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Provider for the OpenAI Chat Completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: Optional[str] = None,
        default_temperature: float = 0.7,
        default_max_tokens: int = 1000,
        timeout: float = 60.0,
        models: Optional[Dict[str, str]] = None,
    ):
        super().__init__(api_key, model, base_url, default_temperature,
                         default_max_tokens, timeout, models)
        # Retries belong to the orchestrator
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def chat_completion(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        start_time = time.time()
        model_name = model or self.model
        try:
            response = await self.client.chat.completions.create(
                model=model_name,
                messages=self._format_messages(messages),
                temperature=temperature if temperature is not None else self.default_temperature,
                max_tokens=max_tokens or self.default_max_tokens,
            )
        except openai.APIConnectionError as e:
            self._log_failure("LLM API call failed", model_name, start_time, e)
            raise ProviderUnreachableError(f"OpenAI unreachable: {e}", provider=self.name) from e
        except openai.OpenAIError as e:
            self._log_failure("LLM API call failed", model_name, start_time, e)
            raise ProviderError(f"OpenAI request failed: {e}", provider=self.name) from e

        if not response.choices:
            raise ProviderError("OpenAI response had no choices", provider=self.name)

        usage = normalize_usage(response.usage.model_dump() if response.usage else None)
        logger.info(
            "LLM API call completed",
            extra={"extra_fields": {
                "provider": self.name,
                "model": response.model or model_name,
                "total_tokens": usage.get("total_tokens", 0),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )
        return GenerationResult(
            content=response.choices[0].message.content or "",
            model_id=response.model or model_name,
            provider_id=self.name,
            usage=usage,
        )

    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[Chunk, None]:
        start_time = time.time()
        model_name = model or self.model
        usage: Dict[str, int] = {}
        finished = False

        try:
            stream = await self.client.chat.completions.create(
                model=model_name,
                messages=self._format_messages(messages),
                temperature=temperature if temperature is not None else self.default_temperature,
                max_tokens=max_tokens or self.default_max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.APIConnectionError as e:
            self._log_failure("LLM API stream failed", model_name, start_time, e)
            raise ProviderUnreachableError(f"OpenAI unreachable: {e}", provider=self.name) from e
        except openai.OpenAIError as e:
            self._log_failure("LLM API stream failed", model_name, start_time, e)
            raise ProviderError(f"OpenAI request failed: {e}", provider=self.name) from e

        try:
            async for event in stream:
                if event.usage:
                    usage = normalize_usage(event.usage.model_dump())
                if not event.choices:
                    continue
                choice = event.choices[0]
                if choice.finish_reason:
                    finished = True
                text = choice.delta.content if choice.delta else None
                if text:
                    yield Chunk(text=text)
        except openai.OpenAIError as e:
            self._log_failure("LLM API stream failed", model_name, start_time, e)
            raise ProviderError(f"OpenAI stream failed: {e}", provider=self.name) from e

        if not finished:
            raise IncompleteStreamError("OpenAI stream ended without finish_reason", provider=self.name)

        logger.info(
            "LLM API stream completed",
            extra={"extra_fields": {
                "provider": self.name,
                "model": model_name,
                "total_tokens": usage.get("total_tokens", 0),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )
        yield Chunk(text="", is_final=True, usage=usage)

    def _log_failure(self, message: str, model: str, start_time: float, error: Exception) -> None:
        logger.error(
            f"{message}: {error}",
            extra={"extra_fields": {
                "provider": self.name,
                "model": model,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "error": str(error),
            }}
        )
