"""
FastAPI server for the translate endpoint.

Sets up:
- CORS middleware so browser chat clients on other origins can call it
- the translation provider chosen from configuration
- the route modules under ``hotelconnect.api.routes``

Run with ``hotelconnect serve`` or ``start_server()``.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hotelconnect import __version__
from hotelconnect.api.routes import register_routes
from hotelconnect.config import AppConfig
from hotelconnect.translation.providers import TranslationProvider, select_provider

logger = logging.getLogger(__name__)


def create_app(
    cfg: AppConfig | None = None, *, provider: TranslationProvider | None = None
) -> FastAPI:
    """Build the application.

    Args:
        cfg: Configuration to read provider settings from.  Defaults to the
             module-level ``config`` singleton.
        provider: Explicit provider (tests inject one).
    """
    if cfg is None:
        from hotelconnect.config import config as cfg
    if provider is None:
        provider = select_provider(cfg.translation)
    logger.info("Translate API using %s provider", provider.name)

    app = FastAPI(title="HotelConnect Translate API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["*"],
    )
    register_routes(app, provider)
    return app


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Serve the API with uvicorn, defaulting host/port to configuration."""
    import uvicorn

    from hotelconnect.config import config

    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
    )
