"""
OpenRouter LLM Provider.
Uses the OpenAI-compatible chat/completions endpoint with OpenRouter's
attribution headers. Streaming responses arrive as Server-Sent Events.
"""

import httpx
import json
import logging
import time
from contextlib import aclosing
from typing import Optional, List, Dict, Any, AsyncGenerator

from ..core.exceptions import ProviderError, ProviderUnreachableError, IncompleteStreamError
from .base import LLMProvider, LLMMessage, Chunk, GenerationResult, normalize_usage
from .sse import SSEDecoder, DONE_MARKER

logger = logging.getLogger(__name__)


class OpenRouterProvider(LLMProvider):
    """
    Provider for the OpenRouter API.
    Selects a model per session mode; falls back to ``model`` otherwise.
    """

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = "anthropic/claude-3-haiku",
        base_url: str = "https://openrouter.ai/api/v1",
        default_temperature: float = 0.7,
        default_max_tokens: int = 1000,
        timeout: float = 60.0,
        models: Optional[Dict[str, str]] = None,
        referer: str = "https://ailocks.ai",
        title: str = "Ailocks AI2AI Network",
    ):
        super().__init__(api_key, model, base_url, default_temperature,
                         default_max_tokens, timeout, models)
        self.referer = referer
        self.title = title

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
        }

    def _build_payload(self, messages: List[LLMMessage], model: Optional[str],
                       temperature: Optional[float], max_tokens: Optional[int],
                       stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self.model,
            "messages": self._format_messages(messages),
            "temperature": temperature if temperature is not None else self.default_temperature,
            "max_tokens": max_tokens or self.default_max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def chat_completion(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        """Send a blocking request to the Chat Completions endpoint."""
        start_time = time.time()
        url = f"{self.base_url}/chat/completions"
        payload = self._build_payload(messages, model, temperature, max_tokens, stream=False)

        logger.debug(
            f"LLM API call starting: provider=openrouter, model={payload['model']}, "
            f"{len(messages)} messages"
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=self._get_headers())
                if resp.is_error:
                    raise ProviderError(
                        f"OpenRouter API error: {resp.status_code} {resp.text[:200]}",
                        provider=self.name,
                    )
                data = resp.json()

            try:
                content = data["choices"][0]["message"]["content"] or ""
            except (KeyError, IndexError, TypeError) as e:
                raise ProviderError("Malformed OpenRouter response", provider=self.name) from e
            usage = normalize_usage(data.get("usage"))
            duration_ms = (time.time() - start_time) * 1000

            logger.info(
                "LLM API call completed",
                extra={"extra_fields": {
                    "provider": self.name,
                    "model": data.get("model", payload["model"]),
                    "total_tokens": usage.get("total_tokens", 0),
                    "duration_ms": round(duration_ms, 2),
                }}
            )

            return GenerationResult(
                content=content,
                model_id=data.get("model", payload["model"]),
                provider_id=self.name,
                usage=usage,
            )
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            self._log_failure("LLM API call failed", payload, start_time, e)
            raise ProviderUnreachableError(f"OpenRouter unreachable: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            self._log_failure("LLM API call failed", payload, start_time, e)
            raise ProviderError(f"OpenRouter request failed: {e}", provider=self.name) from e
        except ValueError as e:
            self._log_failure("LLM API call failed", payload, start_time, e)
            raise ProviderError("OpenRouter returned invalid JSON", provider=self.name) from e
        except ProviderError as e:
            self._log_failure("LLM API call failed", payload, start_time, e)
            raise

    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[Chunk, None]:
        """Stream chat completion chunks decoded from the SSE response."""
        start_time = time.time()
        url = f"{self.base_url}/chat/completions"
        payload = self._build_payload(messages, model, temperature, max_tokens, stream=True)

        logger.debug(
            f"LLM API stream starting: provider=openrouter, model={payload['model']}, "
            f"{len(messages)} messages"
        )

        content_length = 0
        usage: Dict[str, int] = {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream("POST", url, json=payload, headers=self._get_headers()) as response:
                    if response.is_error:
                        body = await response.aread()
                        raise ProviderError(
                            f"OpenRouter API error: {response.status_code} "
                            f"{body.decode('utf-8', 'replace')[:200]}",
                            provider=self.name,
                        )

                    done = False
                    async with aclosing(self._iter_event_data(response)) as frames:
                        async for data in frames:
                            if data == DONE_MARKER:
                                done = True
                                break
                            text, frame_usage = self._parse_frame(data)
                            if frame_usage:
                                usage = frame_usage
                            if text:
                                content_length += len(text)
                                yield Chunk(text=text)

                    if not done:
                        raise IncompleteStreamError(
                            "OpenRouter stream closed before completion marker",
                            provider=self.name,
                        )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "LLM API stream completed",
                extra={"extra_fields": {
                    "provider": self.name,
                    "model": payload["model"],
                    "total_tokens": usage.get("total_tokens", 0),
                    "duration_ms": round(duration_ms, 2),
                    "content_length": content_length,
                }}
            )
            yield Chunk(text="", is_final=True, usage=usage)

        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            self._log_failure("LLM API stream failed", payload, start_time, e)
            raise ProviderUnreachableError(f"OpenRouter unreachable: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            self._log_failure("LLM API stream failed", payload, start_time, e)
            raise ProviderError(f"OpenRouter stream failed: {e}", provider=self.name) from e
        except ProviderError as e:
            self._log_failure("LLM API stream failed", payload, start_time, e)
            raise

    async def _iter_event_data(self, response: httpx.Response) -> AsyncGenerator[str, None]:
        decoder = SSEDecoder()
        async for text in response.aiter_text():
            for event in decoder.feed(text):
                yield event.data
        for event in decoder.flush():
            yield event.data

    def _parse_frame(self, data: str):
        """Return (text, usage) for one data frame; raise on error frames."""
        try:
            frame = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProviderError(f"Malformed stream frame: {data[:100]}", provider=self.name) from e

        if not isinstance(frame, dict):
            raise ProviderError(f"Unexpected stream frame: {data[:100]}", provider=self.name)
        if frame.get("error"):
            error = frame["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"OpenRouter stream error: {message}", provider=self.name)

        text = ""
        choices = frame.get("choices") or []
        if choices:
            delta = choices[0].get("delta") or {}
            text = delta.get("content") or ""
        return text, normalize_usage(frame.get("usage"))

    def _log_failure(self, message: str, payload: Dict[str, Any], start_time: float,
                     error: Exception) -> None:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            f"{message}: {error}",
            extra={"extra_fields": {
                "provider": self.name,
                "model": payload.get("model"),
                "duration_ms": round(duration_ms, 2),
                "error": str(error),
            }}
        )
