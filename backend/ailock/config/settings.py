"""
Configuration Settings.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "Ailock Orchestrator"
    app_version: str = "1.0.0"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=3001, ge=1, le=65535)

    # Identity (tokens are issued elsewhere, we only verify them)
    secret_key: str = "your-secret-key-change-this-in-production"
    algorithm: str = "HS256"

    # Storage
    storage_type: str = "memory"  # memory, local
    local_storage_path: str = "./data"

    # LLM Provider settings
    llm_default_provider: str = "openrouter"  # "openrouter" or "openai"
    llm_enable_streaming: bool = True
    llm_max_tokens: int = Field(default=1000, ge=1)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    llm_retry_attempts: int = Field(default=0, ge=0)

    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_referer: str = "https://ailocks.ai"
    openrouter_title: str = "Ailocks AI2AI Network"

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None  # uses SDK default if not set
    openai_model: str = "gpt-3.5-turbo"

    # Per-mode models (OpenRouter)
    llm_model_researcher: str = "anthropic/claude-3-haiku"
    llm_model_creator: str = "anthropic/claude-3-haiku"
    llm_model_analyst: str = "anthropic/claude-3-haiku"

    # Session orchestration
    default_mode: str = "researcher"
    session_history_limit: int = Field(default=10, ge=1)
    session_queue_depth: int = Field(default=1, ge=0)
    session_queue_timeout_seconds: float = Field(default=120.0, gt=0)
    fallback_message: str = (
        "I apologize, but I'm experiencing some technical difficulties right now. "
        "Please try again in a moment."
    )

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/ailock.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses
    log_llm_calls: bool = True  # Log all LLM calls with token usage

    class Config:
        env_file = ".env"
        case_sensitive = False

    def model_for_mode(self, mode: str) -> str:
        """Return the configured OpenRouter model for a mode."""
        return {
            "researcher": self.llm_model_researcher,
            "creator": self.llm_model_creator,
            "analyst": self.llm_model_analyst,
        }.get(mode, self.llm_model_researcher)


settings = Settings()
