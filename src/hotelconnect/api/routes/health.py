"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (liveness check plus which provider is active).

The version string is read from ``hotelconnect.__version__``, resolved
at import time via ``importlib.metadata``.
"""

from fastapi import APIRouter

from hotelconnect import __version__
from hotelconnect.translation.providers import TranslationProvider


def router(provider: TranslationProvider) -> APIRouter:
    api = APIRouter()

    @api.get("/")
    async def root():
        """Root endpoint showing API identity and current version."""
        return {"message": "HotelConnect Translate API", "version": __version__}

    @api.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "provider": provider.name}

    return api
