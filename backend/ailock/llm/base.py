"""
LLM Provider Base - Abstract base for all generation backends.

Every backend maps its own wire format into ``GenerationResult`` and
``Chunk`` before anything else in the system sees it.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, AsyncIterator
from dataclasses import dataclass, field


@dataclass
class LLMMessage:
    """A single role/content pair sent to a backend."""
    role: str  # "system", "user", "assistant"
    content: str

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        return LLMMessage(role=role, content=text)


@dataclass
class Chunk:
    """One incremental piece of streamed output."""
    text: str
    is_final: bool = False
    usage: Optional[Dict[str, int]] = None


@dataclass
class GenerationResult:
    """Normalized result of one provider round-trip."""
    content: str
    model_id: str = ""
    provider_id: str = ""
    usage: Dict[str, int] = field(default_factory=dict)


def normalize_usage(raw: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Keep the integer token counters of a provider usage block."""
    if not raw:
        return {}
    return {
        key: int(value) for key, value in raw.items()
        if key in ("prompt_tokens", "completion_tokens", "total_tokens") and value is not None
    }


class LLMProvider(ABC):
    """
    Abstract base class for generation backends.
    All providers must implement chat_completion and chat_completion_stream.
    """

    name: str = "base"
    supports_streaming: bool = True

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 0.7, default_max_tokens: int = 1000,
                 timeout: float = 60.0, models: Optional[Dict[str, str]] = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens
        self.timeout = timeout
        self.models = dict(models or {})

    def model_for(self, mode: Optional[str]) -> str:
        """Model to use for a mode; falls back to the provider default."""
        if mode and mode in self.models:
            return self.models[mode]
        return self.model

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        """
        Send a blocking chat completion request.

        Raises:
            ProviderUnreachableError: the backend could not be reached
            ProviderError: any other upstream failure
        """

    @abstractmethod
    def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[Chunk]:
        """
        Stream chat completion chunks.

        Yields text chunks in receipt order and finishes with exactly one
        ``Chunk(is_final=True)`` carrying usage. A stream that ends without
        its terminal marker raises IncompleteStreamError.
        """

    def _format_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert LLMMessage list to API-compatible format."""
        return [{"role": m.role, "content": m.content} for m in messages]
