from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # API settings
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS settings
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Google Calendar settings
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8008/api/calendar/oauth/callback"
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # Calendar sync settings
    CALENDAR_NAME: str = "Talent Calendar"
    DEFAULT_TIMEZONE: str = "America/Chicago"
    PULL_WINDOW_DAYS: int = 365
    FRONTEND_URL: str = "http://localhost:3000"
    OAUTH_STATE_TTL_MINUTES: int = 15
    DEFAULT_CONFLICT_RESOLUTION: str = "keep_cms"

    # Redis settings for storage
    USE_REDIS: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    # File storage fallback
    STORAGE_PATH: str = "./storage"
    SYNC_HISTORY_LIMIT: int = 50

    # Document encryption settings
    DOCUMENT_BUCKET_PATH: str = "./storage/talent-documents"
    DOCUMENT_PUBLIC_BASE_URL: str = "http://localhost:8008/files/talent-documents"
    ENCRYPTION_SECRET_KEY: str = ""
    BASE64_CHUNK_SIZE: int = 49152  # 48KB, multiple of 3 and 4
    DOCUMENT_MAX_FAILED_ATTEMPTS: int = 3
    DOCUMENT_LOCKOUT_HOURS: int = 24

    # JWT settings
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
