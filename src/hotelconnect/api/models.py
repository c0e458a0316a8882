"""
Pydantic models for the translate API.

Field names are camelCase on the wire because the chat clients post and
read them that way; the Python attribute names match.
"""

from pydantic import BaseModel

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class TranslateRequest(BaseModel):
    """
    One message to translate.

    Attributes:
        text: Message body as typed by the sender.
        sourceLang: Sender's language code (e.g. "es-ES"); optional.
        targetLang: Reader's language code.
    """

    text: str = ""
    sourceLang: str | None = None
    targetLang: str = ""


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class TranslateResponse(BaseModel):
    """Translated text plus provenance."""

    translated: str
    provider: str
    confidence: float
    detectedLang: str


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
