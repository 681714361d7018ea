"""Configuration settings for the execution engine."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the engine."""

    # These will be loaded from environment variables or a .env file if not provided
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Result cache
    CACHE_PREFIX: str = "ai_function_result_"
    CACHE_TTL_SECONDS: float = 300.0
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_SNIPPET_SIZE: int = 2

    # Serialized JSON length above which a deferrable result is considered large
    LARGE_RESULT_THRESHOLD: int = 10000

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
