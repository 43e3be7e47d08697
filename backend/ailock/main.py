"""
Ailock Orchestrator - Main FastAPI Application
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .actions import ActionEngine
from .api import sessions_router, actions_router, health_router, ws_router
from .config import Settings, settings as default_settings
from .core.exceptions import (
    OrchestratorError, InvalidInputError, SessionNotFoundError, SessionBusyError,
    StorageError, ProviderError,
)
from .core.logging_config import setup_logging
from .llm import ProviderGateway, build_gateway
from .middleware import RequestLoggingMiddleware
from .orchestrator import SessionOrchestrator
from .storage import SessionStore, UserContextProvider, create_session_store, create_user_context_provider
from .transport import ConnectionManager

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionBusyError, status.HTTP_429_TOO_MANY_REQUESTS),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
]


async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    if status_code >= 500:
        logger.error(f"Request failed with {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    config: Settings = app.state.settings
    setup_logging(config)

    logger.info(f"Starting {config.app_name} v{config.app_version}")
    logger.info(f"Storage: {config.storage_type} ({config.local_storage_path})")
    logger.info(f"LLM providers: {app.state.gateway.describe()}")
    logger.info(f"Log level: {config.log_level.upper()}")
    yield
    # Shutdown
    pending = list(app.state.background_tasks)
    if pending:
        logger.info(f"Waiting for {len(pending)} in-flight generation(s)")
        await asyncio.wait(pending, timeout=config.llm_timeout_seconds)
    logger.info(f"Shutting down {config.app_name}")


def create_app(
    config: Optional[Settings] = None,
    *,
    gateway: Optional[ProviderGateway] = None,
    store: Optional[SessionStore] = None,
    user_context: Optional[UserContextProvider] = None,
) -> FastAPI:
    """
    Build the application and wire its components onto ``app.state``.

    Args:
        config: Settings to use (defaults to the environment)
        gateway: Provider gateway override (tests inject fakes)
        store: Session store override
        user_context: User context provider override
    """
    config = config or default_settings

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Real-time conversational session orchestrator for Ailock",
        lifespan=lifespan,
    )

    manager = ConnectionManager()
    engine = ActionEngine()
    store = store or create_session_store(config.storage_type, config.local_storage_path)
    user_context = user_context or create_user_context_provider(config.storage_type, config.local_storage_path)
    gateway = gateway or build_gateway(config)

    app.state.settings = config
    app.state.connection_manager = manager
    app.state.action_engine = engine
    app.state.store = store
    app.state.user_context = user_context
    app.state.gateway = gateway
    app.state.background_tasks = set()
    app.state.orchestrator = SessionOrchestrator(
        store=store,
        gateway=gateway,
        engine=engine,
        user_context=user_context,
        sink=manager,
        history_limit=config.session_history_limit,
        queue_depth=config.session_queue_depth,
        queue_timeout=config.session_queue_timeout_seconds,
        retry_attempts=config.llm_retry_attempts,
        fallback_message=config.fallback_message,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware (after CORS)
    if config.log_api_requests:
        app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(OrchestratorError, orchestrator_error_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(actions_router)
    app.include_router(ws_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ailock.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )
