"""Centralized application configuration via Pydantic Settings.

Loads all env vars into a typed Settings instance shared by the API and the
import worker.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_ANON_KEY: str = Field(..., description="Supabase anon/public key")
    SUPABASE_SERVICE_KEY: str = Field(
        default="",
        description="Supabase service-role key (for the import worker)",
    )

    # CORS
    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated allowed origins for CORS",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Python log level")
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    # App
    APP_VERSION: str = Field(default="0.1.0", description="Application version")

    # Marketplace import
    IMPORT_CHUNK_SIZE: int = Field(default=500, gt=0, description="Rows per insert chunk")
    DEDUP_LOOKUP_CHUNK_SIZE: int = Field(
        default=200, gt=0, description="Fingerprints per duplicate lookup query"
    )
    STALE_JOB_TTL_SECONDS: int = Field(
        default=1800,
        gt=0,
        description="Running jobs without progress for this long are marked failed",
    )
    WORKER_POLL_INTERVAL_SECONDS: float = Field(
        default=5, gt=0, description="Worker sleep between empty queue polls"
    )
    MAX_UPLOAD_BYTES: int = Field(
        default=20 * 1024 * 1024, gt=0, description="Largest accepted report upload"
    )

    @property
    def allowed_origins(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Factory for Settings, overridable in tests."""
    return Settings()


# Module-level singleton (lazy: only created when first accessed)
try:
    settings = get_settings()
except Exception:
    # Env vars may be unset under test; fixtures build Settings themselves
    settings = None  # type: ignore[assignment]
