"""Translation gateway client.

``TranslationGateway`` is the only place in the core that makes a network
call.  It posts one message to the translate endpoint and returns a
``TranslationResult``, or ``None`` when the translation is unavailable.

Caller contract
---------------
``translate()`` never raises for remote failures.  A non-2xx status, a
transport error, a timeout, or a malformed body all produce ``None`` and
the caller stores tagged fallback text instead (see ``unavailable_text``).
Translation is best-effort and must never block message delivery.

Timeout and retry
-----------------
Each attempt is bounded by ``timeout_seconds``.  Transport errors and 5xx
responses are retried up to ``max_retries`` times; 4xx responses are not
retried because repeating the same request cannot fix them.

Request / response::

    POST {"text": ..., "sourceLang": ..., "targetLang": ...}
    200  {"translated": ..., "provider": ..., "confidence": ..., "detectedLang": ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

UNAVAILABLE_PREFIX = "(Translation unavailable)"


def unavailable_text(body: str) -> str:
    """Fallback stored in place of a translation that could not be obtained."""
    return f"{UNAVAILABLE_PREFIX} {body}"


@dataclass(frozen=True)
class TranslationResult:
    """A successful translation and its provenance."""

    translated: str
    provider: str
    confidence: float
    detected_lang: str

    @classmethod
    def from_payload(cls, data: Any, *, source_lang: str) -> TranslationResult:
        if not isinstance(data, dict):
            raise ValueError("response is not a JSON object")
        translated = data.get("translated")
        if not isinstance(translated, str):
            raise ValueError("response has no 'translated' string")
        return cls(
            translated=translated,
            provider=str(data.get("provider") or "unknown"),
            confidence=float(data.get("confidence") or 0.0),
            detected_lang=str(data.get("detectedLang") or source_lang or "unknown"),
        )


class TranslationGateway:
    """Async client for the translate endpoint.

    One instance is held by the ``AppContext`` and shared by every channel.
    The underlying ``httpx.AsyncClient`` is created lazily and released by
    ``aclose()``.
    """

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = 10.0,
        max_retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._client = client
        self._owns_client = client is None

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def translate(
        self, text: str, source_lang: str, target_lang: str
    ) -> TranslationResult | None:
        """Translate ``text``; ``None`` means unavailable."""
        payload = {"text": text, "sourceLang": source_lang, "targetLang": target_lang}
        attempts = self._max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await self._get_client().post(
                    self._url, json=payload, timeout=self._timeout
                )
            except httpx.TimeoutException:
                logger.warning(
                    "TranslationGateway: request timed out after %.1fs (attempt %d/%d)",
                    self._timeout,
                    attempt,
                    attempts,
                )
                continue
            except httpx.HTTPError as exc:
                logger.warning(
                    "TranslationGateway: request to %s failed (attempt %d/%d): %s",
                    self._url,
                    attempt,
                    attempts,
                    exc,
                )
                continue

            if response.status_code >= 500:
                logger.warning(
                    "TranslationGateway: %s returned %d (attempt %d/%d)",
                    self._url,
                    response.status_code,
                    attempt,
                    attempts,
                )
                continue
            if not response.is_success:
                logger.warning(
                    "TranslationGateway: %s rejected the request with %d",
                    self._url,
                    response.status_code,
                )
                return None

            try:
                return TranslationResult.from_payload(response.json(), source_lang=source_lang)
            except (TypeError, ValueError) as exc:
                logger.error("TranslationGateway: malformed response: %s", exc)
                return None

        return None

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
