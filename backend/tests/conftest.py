"""
Shared test fixtures and configuration.
"""

import asyncio
import os
from typing import List, Optional, Tuple

import pytest
from jose import jwt

# Set test environment variables before importing app modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORAGE_TYPE", "memory")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")

from ailock.actions import ActionEngine
from ailock.config import Settings
from ailock.core.exceptions import ProviderError
from ailock.llm.base import LLMProvider, Chunk, GenerationResult
from ailock.llm.gateway import ProviderGateway, GatewayConfig
from ailock.orchestrator import SessionOrchestrator, EventSink
from ailock.storage import InMemorySessionStore, InMemoryUserContextProvider

TEST_SECRET = "test-secret-key-for-testing"


class FakeProvider(LLMProvider):
    """Scripted backend: yields ``chunks`` then optionally raises ``error``."""

    def __init__(self, chunks: Optional[List[str]] = None, error: Optional[Exception] = None,
                 error_after: int = 0, name: str = "fake", delay: float = 0.0,
                 supports_streaming: bool = True):
        super().__init__(api_key="fake-key", model=f"{name}-model")
        self.name = name
        self.chunks = ["Hello", " world"] if chunks is None else chunks
        self.error = error
        self.error_after = error_after
        self.delay = delay
        self.supports_streaming = supports_streaming
        self.calls: List[list] = []
        self.active = 0
        self.max_active = 0

    async def chat_completion(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResult(content="".join(self.chunks), model_id=model or self.model,
                                provider_id=self.name, usage={"total_tokens": 7})

    async def chat_completion_stream(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append(messages)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for index, text in enumerate(self.chunks):
                if self.error is not None and index == self.error_after:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield Chunk(text=text)
            if self.error is not None and self.error_after >= len(self.chunks):
                raise self.error
            yield Chunk(text="", is_final=True, usage={"total_tokens": 7})
        finally:
            self.active -= 1


class RecordingSink(EventSink):
    """Collects emitted events; listening unless told otherwise."""

    def __init__(self, listening: bool = True):
        self.events: List[Tuple[str, object]] = []
        self.listening = listening

    async def emit(self, session_id, event):
        self.events.append((session_id, event))

    def is_listening(self, session_id):
        return self.listening

    def types(self, session_id: Optional[str] = None) -> List[str]:
        return [e.type for sid, e in self.events if session_id is None or sid == session_id]


def make_gateway(*providers: LLMProvider, default: Optional[str] = None,
                 timeout: float = 5.0, streaming: bool = True) -> ProviderGateway:
    config = GatewayConfig(
        default_provider=default or (providers[0].name if providers else "openrouter"),
        enable_streaming=streaming,
        timeout_seconds=timeout,
    )
    return ProviderGateway(config, {p.name: p for p in providers})


def make_orchestrator(provider: Optional[LLMProvider] = None, sink: Optional[EventSink] = None,
                      **kwargs) -> SessionOrchestrator:
    provider = provider or FakeProvider()
    return SessionOrchestrator(
        store=kwargs.pop("store", InMemorySessionStore()),
        gateway=kwargs.pop("gateway", make_gateway(provider)),
        engine=ActionEngine(),
        user_context=kwargs.pop("user_context", InMemoryUserContextProvider()),
        sink=sink or RecordingSink(),
        **kwargs,
    )


def make_token(user_id: str = "alice", name: str = "Alice", secret: str = TEST_SECRET, **claims) -> str:
    return jwt.encode({"sub": user_id, "name": name, **claims}, secret, algorithm="HS256")


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        secret_key=TEST_SECRET,
        storage_type="memory",
        local_storage_path=str(tmp_path / "data"),
        log_file_enabled=False,
        log_console_enabled=False,
        log_api_requests=True,
        openrouter_api_key=None,
        openai_api_key=None,
    )


@pytest.fixture
def provider_error():
    return ProviderError("upstream exploded", provider="fake")
