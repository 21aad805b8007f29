from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Equipment inventory search settings.

    All values are loaded from environment variables.
    A .env file in the backend directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://inventory:inventory@db:5432/inventory"
    DATABASE_STATEMENT_TIMEOUT_MS: int = 5000

    # --- Redis ---
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CONNECT_TIMEOUT_SECONDS: float = 10.0
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 1.0

    # --- Search cache ---
    SEARCH_CACHE_TTL_SECONDS: int = 300  # 5 minutes
    SEARCH_ANALYTICS_TTL_SECONDS: int = 86400  # 24 hours
    SEARCH_CACHE_COOLDOWN_SECONDS: float = 30.0

    # --- Search execution ---
    SEARCH_SLOW_QUERY_MS: int = 100
    SEARCH_REFRESH_TIMEOUT_MS: int = 30000
    SEARCH_PARAMS: dict[str, float] = {}  # Overrides for search.params defaults

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
