"""
ASGI middleware for logging HTTP requests and WebSocket handshakes.

Pure ASGI (not BaseHTTPMiddleware) so WebSocket scopes pass through
untouched. Bearer tokens in headers or the ``token`` query parameter are
masked before anything is logged.
"""

import json
import logging
import time
import uuid
from typing import Optional, Dict
from urllib.parse import parse_qsl
from starlette.types import ASGIApp, Receive, Scope, Send, Message

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)


def _query_params(scope: Scope) -> Optional[Dict[str, str]]:
    query_string = scope.get("query_string", b"").decode("utf-8", errors="ignore")
    if not query_string:
        return None
    return filter_sensitive_data(dict(parse_qsl(query_string)))


def _body_for_log(chunks: list) -> Optional[str]:
    body = b"".join(chunks)
    if not body:
        return None
    text = body.decode("utf-8", errors="ignore")
    try:
        return truncate_large_data(json.dumps(filter_sensitive_data(json.loads(text)), ensure_ascii=False), 2000)
    except json.JSONDecodeError:
        return truncate_large_data(text, 2000)


class RequestLoggingMiddleware:
    """Log every request with status, duration and a short request id."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths logged only at DEBUG (e.g. ["/health"])
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            client = scope.get("client")
            logger.info(
                f"WebSocket handshake: {scope.get('path', '')}",
                extra={"extra_fields": {
                    "client": client[0] if client else None,
                    "query_params": _query_params(scope),
                }}
            )
            await self.app(scope, receive, send)
            return

        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        method = scope.get("method", "UNKNOWN")
        request_id = uuid.uuid4().hex[:12]
        quiet = path in self.exclude_paths
        start_time = time.time()

        body_chunks = []
        status_code = 0

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path} - {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )
            raise

        duration_ms = round((time.time() - start_time) * 1000, 2)
        if quiet:
            log_level = logging.DEBUG
        elif status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        logger.log(
            log_level,
            f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "query_params": _query_params(scope),
                "status_code": status_code,
                "duration_ms": duration_ms,
                "request_body": _body_for_log(body_chunks) if log_level >= logging.WARNING else None,
            }}
        )
