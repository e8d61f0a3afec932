from pathlib import Path
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root

ENV_FILE = os.getenv("ENV_FILE", str(BASE_DIR / ".env"))

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE, extra="ignore")

    APP_ENV: str = "local"
    DATABASE_URL: str
    CORS_ORIGINS: str = "*"  # Comma-separated list of allowed origins, or "*" for all
    LOG_LEVEL: str = "INFO"

    # Submission policy: whether a Completed submission may be overwritten
    ALLOW_EDIT_AFTER_COMPLETION: bool = False

    MAX_RELATIONSHIP_LABEL_LENGTH: int = 50

    # Emailing list cache: sliding window re-extended on read, capped by an absolute lifetime
    EMAILING_LIST_CACHE_SLIDING_SECONDS: int = 300
    EMAILING_LIST_CACHE_ABSOLUTE_SECONDS: int = 1800
    EMAILING_LIST_CACHE_MAXSIZE: int = 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list, handling '*' for development"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

settings = Settings()
