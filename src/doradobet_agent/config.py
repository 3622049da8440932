"""Configuration settings for the application."""

from pathlib import Path

from pydantic_settings import BaseSettings

_PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 3002
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    SLOW_REQUEST_MS: int = 15_000

    # Shared secret expected in the ``x-odds-api-key`` header
    WEBHOOK_API_KEY: str | None = None

    # LLM Configuration
    MODEL_PROVIDER: str = "anthropic"
    ANTHROPIC_API_KEY: str | None = None
    CLAUDE_MODEL: str = "claude-sonnet-4-6"
    MAX_OUTPUT_TOKENS: int = 4096
    MAX_TURNS: int = 10
    WEB_SEARCH_MAX_USES: int = 5

    # Persistence
    DATABASE_URL: str = "sqlite:///./doradobet.db"
    DB_POOL_SIZE: int = 10
    REDIS_URL: str | None = None  # None -> in-process dedup cache
    DEDUP_TTL_SECONDS: int = 300
    AUDIT_SINK: str = "sql"  # Options: sql, jsonl
    AUDIT_LOG_PATH: str = "./data/tool_audit.jsonl"

    # Sports data API
    SPORTS_API_URL: str = "https://altenar-data-api-dev.onrender.com"
    SPORTS_API_TIMEOUT: float = 10.0
    EVENT_URL_BASE: str = "https://vsft.virtualsoft.tech/sport"

    # Conversation context
    TIMEZONE: str = "America/Bogota"
    PROACTIVE_CUTOFF_HOUR: int = 12
    HISTORY_TURNS: int = 10
    DEFAULT_AGENT_NAME: str = "Paul"
    PROMPTS_DIR: str = str(_PACKAGE_DIR / "prompts")

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
