"""Machine translation for outbound chat messages.

Package structure
-----------------
gateway.py      TranslationGateway: async client the core calls once per
                outbound message; returns ``None`` when unavailable.
providers.py    MockProvider / DeepLProvider: what the translate API
                endpoint calls on the server side.

Typical call flow (inside MessageChannel.send)
----------------------------------------------
1. sender and counterparty language codes differ
2. ``gateway.translate(body, sender_code, counterparty_code)``
3. on success the translation is stored under the counterparty code
4. on ``None`` the tagged ``unavailable_text(body)`` is stored instead
"""

from hotelconnect.translation.gateway import (
    UNAVAILABLE_PREFIX,
    TranslationGateway,
    TranslationResult,
    unavailable_text,
)

__all__ = ["UNAVAILABLE_PREFIX", "TranslationGateway", "TranslationResult", "unavailable_text"]
