"""Translate endpoint.

``POST /api/translate`` is what ``TranslationGateway`` calls.  It delegates
to the configured provider: DeepL when an API key is set, otherwise the
echo provider so the chat works end to end without credentials.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from hotelconnect.api.models import ErrorResponse, TranslateRequest, TranslateResponse
from hotelconnect.translation.providers import ProviderError, TranslationProvider

logger = logging.getLogger(__name__)


def router(provider: TranslationProvider) -> APIRouter:
    """Build the translate router around one provider instance."""
    api = APIRouter()

    @api.post(
        "/api/translate",
        response_model=TranslateResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def translate(request: TranslateRequest):
        """Translate one message."""
        if not request.text or not request.targetLang:
            return JSONResponse(status_code=400, content={"error": "Missing text/targetLang"})

        try:
            result = await provider.translate(request.text, request.sourceLang, request.targetLang)
        except ProviderError as exc:
            return JSONResponse(
                status_code=500, content={"error": "Translation failed", "detail": exc.detail}
            )
        except Exception as exc:  # noqa: BLE001 - any provider failure becomes a JSON 500
            logger.exception("Provider %s raised: %s", provider.name, exc)
            return JSONResponse(
                status_code=500, content={"error": "Translation error", "detail": str(exc)}
            )

        return TranslateResponse(
            translated=result.translated,
            provider=result.provider,
            confidence=result.confidence,
            detectedLang=result.detected_lang,
        )

    return api
