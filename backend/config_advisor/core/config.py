"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "Salesforce Configuration Advisor"
    ENV: str = "development"

    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/config_advisor"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"

    # ollama credentials
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1"
    LLM_TIMEOUT_SECONDS: float = 60.0

    # salesforce metadata access
    SALESFORCE_INSTANCE_URL: str = ""
    SALESFORCE_ACCESS_TOKEN: str = ""
    SALESFORCE_API_VERSION: str = "v59.0"
    SALESFORCE_TIMEOUT_SECONDS: float = 25.0
    SALESFORCE_MAX_RETRIES: int = 3

    RECALC_ENABLED: bool = True
    RECALC_TICK_SECONDS: float = 2.0
    RECALC_CYCLE_TIMEOUT_SECONDS: float = 120.0

    WS_SEND_TIMEOUT_SECONDS: float = 5.0

    ANALYTICS_CACHE_SECONDS: int = 300
    LEARNING_CACHE_SECONDS: int = 300
    FEEDBACK_TREND_WINDOW_DAYS: int = 30
    FEEDBACK_TREND_SAMPLE_SIZE: int = 100

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
