"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./load_insights.db"

    # AI
    gemini_api_key: str = ""
    extraction_model: str = "gemini-2.5-flash"
    assistant_model: str = "gemini-2.5-flash"
    llm_timeout_seconds: float = 120.0

    # Mapping
    google_maps_api_key: str = ""
    distance_timeout_seconds: float = 10.0

    # Gmail scan
    gmail_timeout_seconds: float = 30.0
    gmail_max_pdfs_per_sync: int = 20
    gmail_delay_between_pdfs_ms: int = 1000

    # Auth / JWT (tokens are issued by the identity layer, we only verify)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    default_account: str = "default"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] so the browser extension can reach the API
        from its chrome-extension:// origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
