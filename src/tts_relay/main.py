"""
FastAPI Application Entry Point.

create_app() wires configuration, providers, storage, the orchestrator,
the delivery layer and the cleanup scheduler into one ServiceContainer on
``app.state.container``. The lifespan starts the scheduler and shuts the
orchestrator down (provider transports) on exit. Logging is
reconfigured from the settings passed in.

Every response carries an ``X-Request-Id`` header. A well-formed incoming
X-Request-Id is reused; otherwise a 12-character id is generated.

Usage:
    # Run with uvicorn
    uvicorn tts_relay.main:app --host 0.0.0.0 --port 8000

    # Or use the module directly
    python -m uvicorn tts_relay.main:app --reload
"""
from __future__ import annotations

import re
import uuid
from contextlib import asynccontextmanager
from typing import Iterable, Optional

import httpx
from fastapi import FastAPI, Request

from tts_relay import __version__
from tts_relay.api.audio_routes import router as audio_router
from tts_relay.api.dependencies import build_container, get_settings
from tts_relay.api.errors import register_exception_handlers
from tts_relay.api.tts_routes import router as tts_router
from tts_relay.core.config import Settings
from tts_relay.core.logging import configure_logging, get_logger, info, request_scope
from tts_relay.providers.base import BaseProvider

_LOG = get_logger("tts-relay.main")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[Iterable[BaseProvider]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to get_settings().
        providers: Explicit providers (tests); built from config when None.
        transport: httpx transport for config-built remote providers.

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    settings = settings or get_settings()
    container = build_container(settings, providers=providers, transport=transport)

    # Validated level from these settings; TTS_RELAY_LOG_LEVEL still wins
    logging_section = dict(settings.raw.get("logging") or {})
    logging_section["level"] = container.config.logging.level
    configure_logging(force=True, section=logging_section)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if container.config.cleanup.enabled:
            container.scheduler.start()
        info(
            _LOG, "startup",
            version=__version__,
            providers=container.registry.names(),
            storage_dir=str(container.storage.base_dir),
            environment=container.config.server.environment,
        )
        try:
            yield
        finally:
            container.close()
            info(_LOG, "shutdown")

    app = FastAPI(title="tts-relay", version=__version__, lifespan=lifespan)
    app.state.container = container

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        incoming = request.headers.get("X-Request-Id", "")
        rid = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())[:12]
        request.state.request_id = rid
        with request_scope(rid):
            response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    register_exception_handlers(app, development=container.config.server.is_development)

    app.include_router(tts_router)      # /tts/*, /health, /metrics
    app.include_router(audio_router)    # /audio/*

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
