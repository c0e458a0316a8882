"""
Route registration entry point for the FastAPI application.

Each module exposes a ``router(provider)`` factory; ``register_routes``
mounts them all.
"""

from fastapi import FastAPI

from hotelconnect.api.routes import health, translate
from hotelconnect.translation.providers import TranslationProvider


def register_routes(app: FastAPI, provider: TranslationProvider) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router(provider))
    app.include_router(translate.router(provider))
