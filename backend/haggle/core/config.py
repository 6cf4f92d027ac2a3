"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Haggle Negotiation Rooms"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Durable store
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/haggle.db"
    DURABLE_STORE_ENABLED: bool = True  # False forces memory-only operation

    # Moderator credential (opaque, compared in constant time)
    MODERATOR_KEY: str = "change-me"

    # Room catalog: JSON file with [{"id", "name", "description", "products": [...]}]
    ROOM_CATALOG_PATH: str = ""

    # Matchmaking
    PAIRING_SEED: Optional[int] = None  # Seed the shuffle for reproducible sessions
    AUTO_PAIR_LATE_JOINERS: bool = True  # Pair waiting participants while a round is active

    # Offer extraction heuristic
    OFFER_MIN_CONFIDENCE: float = 0.2
    OFFER_CONTEXT_WINDOW: int = 30  # characters before/after a numeric token
    OFFER_PLAUSIBLE_MIN: float = 5.0
    OFFER_PLAUSIBLE_MAX: float = 100000.0

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    @field_validator("OFFER_MIN_CONFIDENCE")
    @classmethod
    def validate_confidence_floor(cls, v: float) -> float:
        """Confidence floor must sit inside [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("OFFER_MIN_CONFIDENCE must be between 0 and 1")
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/haggle.log"

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton instance
settings = Settings()
