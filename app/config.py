from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional


class Settings(BaseSettings):
    """Main application settings"""

    # API settings
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    APP_VERSION: str = Field(default="1.0.0")
    CORS_ORIGINS: List[str] = Field(default=["http://localhost:3000"])

    # MongoDB settings
    MONGODB_HOST: str = Field(default="mongo")
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="sehatscan")
    MONGODB_PASSWORD: str = Field(default="sehatscan")
    MONGODB_DB_NAME: str = Field(default="sehatscan")
    MONGODB_URI: Optional[str] = Field(default=None)

    # Redis cache (caching is disabled when unset)
    REDIS_URL: Optional[str] = Field(default=None)

    # Celery settings
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # AI model settings
    GEMINI_API_KEY: Optional[str] = Field(default=None)
    GEMINI_MODEL: str = Field(default="gemini-2.0-flash")
    USE_MOCK_AI: bool = Field(default=False)

    # Upload limits
    MAX_UPLOAD_SIZE: int = Field(default=10 * 1024 * 1024)

    # Timeouts in seconds
    FACE_ANALYSIS_TIMEOUT: float = Field(default=30.0)
    REPORT_ANALYSIS_TIMEOUT: float = Field(default=60.0)
    RISK_ASSESSMENT_TIMEOUT: float = Field(default=45.0)

    # Face detection
    FACE_DETECTION_MODEL: str = Field(default="haarcascade_frontalface_default.xml")

    # OCR
    TESSERACT_CMD: Optional[str] = Field(default=None)
    OCR_LANGUAGE: str = Field(default="eng")

    # Persistence of analyses and request logs
    STORE_ANALYSES: bool = Field(default=True)

    # Language used when the client sends no preference
    DEFAULT_LANGUAGE: str = Field(default="en")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **data):
        super().__init__(**data)
        # Build MONGODB_URI from its parts when it is not given
        if not self.MONGODB_URI:
            self.MONGODB_URI = f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}@{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DB_NAME}?authSource=admin"

    @property
    def ai_enabled(self) -> bool:
        """Whether the hosted model should be used instead of the rule-based analyzer."""
        return bool(self.GEMINI_API_KEY) and not self.USE_MOCK_AI


def get_settings() -> Settings:
    """Return the application settings"""
    return Settings()


# Settings instance shared across the application
settings = get_settings()
