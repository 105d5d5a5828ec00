import logging
from typing import List, Optional

from app.config import settings
from app.models.responses import Language

# Logger setup
logger = logging.getLogger(__name__)

LANGUAGE_HEADER = "X-Selected-Language"

SUPPORTED_LANGUAGES = [
    Language(code="en", name="English", native_name="English"),
    Language(code="es", name="Spanish", native_name="Español"),
    Language(code="fr", name="French", native_name="Français"),
    Language(code="de", name="German", native_name="Deutsch"),
    Language(code="it", name="Italian", native_name="Italiano"),
    Language(code="pt", name="Portuguese", native_name="Português"),
    Language(code="ru", name="Russian", native_name="Русский"),
    Language(code="zh", name="Chinese", native_name="中文"),
    Language(code="ja", name="Japanese", native_name="日本語"),
    Language(code="ko", name="Korean", native_name="한국어"),
    Language(code="ar", name="Arabic", native_name="العربية"),
    Language(code="hi", name="Hindi", native_name="हिन्दी"),
    Language(code="ur", name="Urdu", native_name="اردو"),
]

SUPPORTED_CODES = [language.code for language in SUPPORTED_LANGUAGES]


def default_language() -> str:
    code = normalize(settings.DEFAULT_LANGUAGE)
    return code if code in SUPPORTED_CODES else "en"


def normalize(value: Optional[str]) -> Optional[str]:
    """Primary subtag of a language tag, lowercased: "pt-BR" -> "pt"."""
    if not value:
        return None
    return value.strip().replace("_", "-").split("-")[0].lower() or None


def _quality(params: str) -> Optional[float]:
    """The q parameter of a language range; 1 when absent, None when malformed."""
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.strip().lower() == "q":
            try:
                return float(value.strip())
            except ValueError:
                return None
    return 1.0


def parse_accept_language(header: Optional[str]) -> List[str]:
    """
    Language codes from an Accept-Language header, best first.

    Entries with q=0 or a malformed q value are dropped.
    """
    if not header:
        return []

    entries = []
    for position, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        code = normalize(tag)
        if not code or code == "*":
            continue

        quality = _quality(params)
        if quality is None or not quality > 0:
            continue

        entries.append((-quality, position, code))

    return [code for _, _, code in sorted(entries)]


def negotiate_language(
    query_value: Optional[str] = None,
    selected_header: Optional[str] = None,
    accept_language: Optional[str] = None
) -> str:
    """
    Pick the response language.

    Order: explicit `lang` query parameter, the language the client saved
    (X-Selected-Language), the first supported Accept-Language entry, then
    the configured default.
    """
    for candidate in (normalize(query_value), normalize(selected_header)):
        if candidate in SUPPORTED_CODES:
            return candidate

    for code in parse_accept_language(accept_language):
        if code in SUPPORTED_CODES:
            return code

    return default_language()


def language_name(code: str) -> str:
    for language in SUPPORTED_LANGUAGES:
        if language.code == code:
            return language.name
    return "English"
