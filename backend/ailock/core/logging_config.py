"""
Logging setup for the orchestrator.

Records carry their structured context in ``extra_fields`` (see
SessionLoggerAdapter). The console shows a short session tag next to the
message; the rotating file gets one JSON document per record with the
correlation ids (session, user, generation) hoisted to the top.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

CORRELATION_KEYS = ("session_id", "user_id", "generation_id")

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access", "websockets")

LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, 'extra_fields', None) or {}


class ConsoleFormatter(logging.Formatter):
    """Colored level name plus a ``[session]`` tag when the record has one."""

    def __init__(self, colored: bool = True):
        super().__init__(
            "%(asctime)s | %(levelname)s | %(name)s | %(session_tag)s%(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        session_id = _fields(record).get("session_id")
        record.session_tag = f"[{str(session_id)[:8]}] " if session_id else ""

        original = record.levelname
        if self.colored:
            record.levelname = f"{LEVEL_COLORS.get(original, RESET)}{original:8s}{RESET}"
        try:
            return super().format(record)
        finally:
            # The file handler formats the same record afterwards
            record.levelname = original


class JSONFormatter(logging.Formatter):
    """One JSON document per record, correlation ids first."""

    def __init__(self, service: str = "ailock-orchestrator"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(_fields(record))
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CORRELATION_KEYS:
            if key in fields:
                log_data[key] = fields.pop(key)
        log_data["location"] = f"{record.funcName}:{record.lineno}"
        log_data.update(fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter(colored=sys.stdout.isatty()))
    return handler


def _file_handler(config: Any, level: int) -> logging.Handler:
    Path(config.log_file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=config.log_file_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )
    handler.setLevel(level)
    if config.log_json_format:
        handler.setFormatter(JSONFormatter(service=getattr(config, "app_name", "ailock-orchestrator")))
    else:
        handler.setFormatter(ConsoleFormatter(colored=False))
    return handler


def setup_logging(config: Any) -> None:
    """
    Configure the root logger from Settings.

    Args:
        config: Settings object; reads log_level, log_console_enabled,
            log_file_enabled, log_file_path and log_json_format
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    if config.log_console_enabled:
        root_logger.addHandler(_console_handler(level))
    if config.log_file_enabled:
        root_logger.addHandler(_file_handler(config, level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized: level={config.log_level.upper()}, "
        f"console={config.log_console_enabled}, "
        f"file={config.log_file_enabled}"
    )


class SessionLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps fixed session context onto every record's ``extra_fields``.
    Per-call ``extra_fields`` win over the adapter's.

    Usage:
        log = SessionLoggerAdapter(logger, {"session_id": sid, "user_id": uid})
        log.info("Generation started")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.setdefault('extra', {})
        extra['extra_fields'] = {**self.extra, **extra.get('extra_fields', {})}
        return msg, kwargs


def session_logger(logger: logging.Logger, session_id: str,
                   user_id: Optional[str] = None) -> SessionLoggerAdapter:
    context: Dict[str, Any] = {"session_id": session_id}
    if user_id:
        context["user_id"] = user_id
    return SessionLoggerAdapter(logger, context)


SENSITIVE_KEYS = ('password', 'token', 'secret', 'authorization', 'api_key', 'api-key')


def filter_sensitive_data(data: Any, sensitive_keys: Optional[tuple] = None) -> Any:
    """Copy of ``data`` with credential-looking values masked, recursively."""
    keys = sensitive_keys or SENSITIVE_KEYS
    if isinstance(data, dict):
        return {
            key: "***FILTERED***" if any(s in str(key).lower() for s in keys)
            else filter_sensitive_data(value, keys)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [filter_sensitive_data(item, keys) for item in data]
    return data


def truncate_large_data(data: str, max_length: int = 5000) -> str:
    if len(data) <= max_length:
        return data
    return data[:max_length] + f"... (truncated, total length: {len(data)})"
