"""
Passkey Server

Main entry point for the passkey ceremony HTTP service.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from passkey.api import setup_error_handlers, setup_routes
from passkey.core.config import PasskeyConfig, get_config, set_config
from passkey.service import PasskeyService


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def create_app(
    config: Optional[PasskeyConfig] = None,
    service: Optional[PasskeyService] = None,
) -> FastAPI:
    """
    Create and configure the passkey FastAPI application.

    Args:
        config: Optional configuration override
        service: Optional pre-built service (tests inject stores/verifiers here)

    Returns:
        Configured FastAPI application
    """
    if config:
        set_config(config)
    else:
        config = get_config()

    setup_logging(config.monitoring.log_level.value, config.monitoring.log_format)

    service = service or PasskeyService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting passkey service", rp_id=config.relying_party.id)
        await service.initialize()
        yield
        logger.info("Stopping passkey service")
        await service.shutdown()

    app = FastAPI(
        title="Passkey Ceremony Server",
        description="WebAuthn registration and authentication ceremonies.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.relying_party.origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_error_handlers(app)
    setup_routes(app, service)

    return app


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: bool = False,
) -> None:
    """
    Run the passkey server.

    Args:
        host: Host to bind to (defaults to config)
        port: Port to bind to (defaults to config)
        reload: Enable auto-reload for development
    """
    config = get_config()
    if host:
        config.host = host
    if port:
        config.port = port
    set_config(config)

    uvicorn.run(
        "passkey.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=reload,
        log_level=config.monitoring.log_level.value.lower(),
    )


if __name__ == "__main__":
    run_server()
