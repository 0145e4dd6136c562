# @TASK P0-T0.3 - pydantic-settings based application settings

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """aitelier application settings.

    All values are loaded from environment variables.
    A .env file in the working directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://aitelier:aitelier@db:5432/aitelier"

    # --- Training provider (Together.ai) ---
    TOGETHER_API_BASE: str = "https://api.together.xyz/v1"
    TOGETHER_API_KEY: str = ""  # Used when a project has no key of its own
    PROVIDER_TIMEOUT: float = 60.0
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_RETRY_DELAY: float = 1.0  # Seconds before the first retry, doubled each attempt

    # --- Evaluation ---
    EVAL_MAX_CONCURRENCY: int = 3  # Parallel completion calls per evaluation batch
    EVAL_MAX_TOKENS: int = 512
    EVAL_TEMPERATURE: float = 0.7
    SIDE_ASSIGNMENT_SALT: str = "aitelier-blind-v1"  # Copied onto each new evaluation run; existing runs keep theirs

    # --- Dataset splitting ---
    DEFAULT_VAL_FRACTION: float = 0.2
    DEFAULT_QUALITY_THRESHOLD: int = 8

    # --- HTTP ---
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
