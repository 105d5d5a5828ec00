from fastapi import APIRouter, Depends

from app.api.deps import get_language
from app.models.responses import LanguagesResponse
from app.utils.i18n import SUPPORTED_LANGUAGES, default_language

# Router
router = APIRouter()


@router.get("/languages", response_model=LanguagesResponse)
async def list_languages(language: str = Depends(get_language)):
    """Supported interface languages and the one negotiated for this request."""
    return LanguagesResponse(
        current=language,
        default=default_language(),
        languages=SUPPORTED_LANGUAGES
    )
