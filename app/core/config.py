from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    # App Configuration
    APP_NAME: str = "MentorSync API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_HOSTS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Database (Postgres in production, SQLite for local development)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./mentorsync.db")
    DATABASE_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    # Authentication
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-mentorsync-development-secret-key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Scheduling
    DEFAULT_SLOT_DURATION_MINUTES: int = 60
    MIN_SLOT_DURATION_MINUTES: int = 15
    MAX_SLOT_DURATION_MINUTES: int = 240

    # Booking
    PRICE_TOLERANCE: float = 0.01  # currency units
    MAX_NOTE_LENGTH: int = 500

    # Meetings (opaque generated links, no provider integration)
    MEETING_BASE_URL: str = "https://meet.jit.si"
    MEETING_ROOM_PREFIX: str = "mentorsync"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()

# Update allowed hosts for production
if settings.ENVIRONMENT == "production":
    settings.ALLOWED_HOSTS.extend([
        "https://mentorsync.vercel.app"
    ])
