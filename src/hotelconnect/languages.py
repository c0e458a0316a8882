"""Language catalog.

A small fixed set of guest languages plus the constant hotel language that
staff always write in.  ``Language`` is an immutable value type; it is
stored as ``{"label": ..., "code": ...}``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Language:
    """A display label and a BCP-47 style code (``"en-US"``)."""

    label: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "code": self.code}

    @classmethod
    def from_dict(cls, data: Any, *, default: Language | None = None) -> Language:
        """Parse a stored language map, tolerating missing fields."""
        fallback = default or HOTEL_LANGUAGE
        if not isinstance(data, dict) or not data.get("code"):
            return fallback
        code = str(data["code"])
        return cls(label=str(data.get("label") or code), code=code)


LANGUAGES: dict[str, Language] = {
    "English": Language("English", "en-US"),
    "Spanish": Language("Spanish", "es-ES"),
    "French": Language("French", "fr-FR"),
    "German": Language("German", "de-DE"),
    "Japanese": Language("Japanese", "ja-JP"),
    "Hindi": Language("Hindi", "hi-IN"),
    "Mandarin Chinese": Language("Mandarin Chinese", "zh-CN"),
}

HOTEL_LANGUAGE = Language("English", "en-US")


def resolve_language(key: str | Language | None) -> Language:
    """Return a catalog language by key, or the hotel default when unknown."""
    if isinstance(key, Language):
        return key
    if key is None:
        return HOTEL_LANGUAGE
    return LANGUAGES.get(key, HOTEL_LANGUAGE)
