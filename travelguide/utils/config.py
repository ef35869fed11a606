import logging
from pydantic_settings import BaseSettings
from typing import Optional

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # Google Cloud / Gemini Configuration
    GOOGLE_CLOUD_PROJECT: str = "your-project-id"
    GOOGLE_CLOUD_LOCATION: str = "us-central1"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    COMPLETION_MAX_ATTEMPTS: int = 2
    COMPLETION_TEMPERATURE: float = 0.7

    # Amap (geocoding + weather)
    AMAP_API_KEY: str = "your-amap-key"
    AMAP_BASE_URL: str = "https://restapi.amap.com/v3"
    AMAP_MAX_REQUESTS_PER_SECOND: int = 3  # upstream ceiling per key
    AMAP_TIMEOUT_SECONDS: float = 10.0

    # Social content (TikHub Xiaohongshu)
    TIKHUB_API_URL: str = "https://api.tikhub.io"
    TIKHUB_API_KEY: Optional[str] = None
    SOCIAL_NOTES_LIMIT: int = 5

    # Firestore persistence
    USE_FIRESTORE: bool = True
    FIRESTORE_PROJECT_ID: Optional[str] = None
    FIRESTORE_CREDENTIALS: Optional[str] = None  # path to Firestore service account json
    FIRESTORE_DATABASE_ID: Optional[str] = None  # defaults to '(default)'
    FIRESTORE_GUIDES_COLLECTION: str = "travel_guides"

    # API Configuration
    API_VERSION: str = "1.0.0"
    DEBUG_MODE: bool = False
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Request limits
    MAX_PROMPT_LENGTH: int = 2000
    MAX_BATCH_GEOCODE_ITEMS: int = 50

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}

# Global settings instance
settings = Settings()

def get_settings() -> Settings:
    """Get the global settings instance"""
    return settings

def validate_settings() -> bool:
    """Validate that all required settings are configured"""
    required_settings = [
        "GOOGLE_CLOUD_PROJECT",
        "AMAP_API_KEY"
    ]

    missing_settings = []
    for setting in required_settings:
        if not getattr(settings, setting) or getattr(settings, setting) in ["your-project-id", "your-amap-key"]:
            missing_settings.append(setting)

    if missing_settings:
        logger.error(f"Missing or invalid settings: {', '.join(missing_settings)}")
        logger.error("Please configure these settings in your .env file or environment variables")
        return False

    # If FIRESTORE_PROJECT_ID not set, fallback to GOOGLE_CLOUD_PROJECT (but allow split-projects)
    if not settings.FIRESTORE_PROJECT_ID:
        settings.FIRESTORE_PROJECT_ID = settings.GOOGLE_CLOUD_PROJECT

    return True
