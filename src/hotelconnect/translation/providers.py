"""Server-side translation providers behind ``POST /api/translate``.

Two providers exist:

- ``MockProvider`` echoes the text unchanged.  It is used whenever no
  DeepL key is configured so the app works end to end without one.
- ``DeepLProvider`` calls DeepL's ``/v2/translate`` form API.

DeepL wants two-letter upper-case language codes, so ``"es-ES"`` is sent
as ``"ES"``.
"""

from __future__ import annotations

import logging

import httpx

from hotelconnect.config import TranslationSettings
from hotelconnect.translation.gateway import TranslationResult

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """The upstream provider answered with a non-success status."""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


def deepl_language(code: str) -> str:
    """``"es-ES"`` → ``"ES"``."""
    return code.upper()[:2]


class MockProvider:
    name = "mock"

    async def translate(
        self, text: str, source_lang: str | None, target_lang: str
    ) -> TranslationResult:
        return TranslationResult(
            translated=text,
            provider=self.name,
            confidence=1.0,
            detected_lang=source_lang or "unknown",
        )


class DeepLProvider:
    name = "deepl"
    confidence = 0.9

    def __init__(self, *, api_key: str, url: str, timeout_seconds: float = 10.0) -> None:
        self._api_key = api_key
        self._url = url
        self._timeout = timeout_seconds

    async def translate(
        self, text: str, source_lang: str | None, target_lang: str
    ) -> TranslationResult:
        """Call DeepL.

        Raises:
            ProviderError: DeepL answered with a non-2xx status.
            httpx.HTTPError: Transport failure.
        """
        form = {"text": text, "target_lang": deepl_language(target_lang or "EN")}
        if source_lang:
            form["source_lang"] = deepl_language(source_lang)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                self._url,
                data=form,
                headers={"Authorization": f"DeepL-Auth-Key {self._api_key}"},
            )
        if not response.is_success:
            logger.warning("DeepL returned %d", response.status_code)
            raise ProviderError("Translation failed", response.text)

        data = response.json()
        first = (data.get("translations") or [{}])[0]
        return TranslationResult(
            translated=first.get("text") or text,
            provider=self.name,
            confidence=self.confidence,
            detected_lang=first.get("detected_source_language") or source_lang or "unknown",
        )


TranslationProvider = MockProvider | DeepLProvider


def select_provider(settings: TranslationSettings) -> TranslationProvider:
    """DeepL when a key is configured, otherwise the echo provider."""
    if settings.deepl_api_key:
        return DeepLProvider(
            api_key=settings.deepl_api_key,
            url=settings.deepl_url,
            timeout_seconds=settings.timeout_seconds,
        )
    return MockProvider()
