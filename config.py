"""
Configuration management for PortfoProphet.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Literal, Optional
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',  # Allow extra fields in .env for flexibility
        populate_by_name=True
    )

    # Database (stores the persisted state blobs)
    database_url: str = "sqlite:///portfoprophet.db"
    db_echo: bool = False

    # LLM backend: "gemini" (Google Search grounding), "cloud" (OpenAI-compatible) or "local"
    llm_mode: Literal["gemini", "cloud", "local"] = "gemini"
    llm_temperature: float = 0.4

    # Gemini Configuration
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")
    )
    gemini_model: str = "gemini-3-flash-preview"

    # OpenAI / Cloud LLM Configuration
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    openai_base_url: Optional[str] = None

    # Local LLM Configuration (Ollama)
    local_model: str = "qwen2.5:14b"
    local_llm_url: str = "http://localhost:11434/v1"

    # Market data
    price_provider: Literal["finmind", "yfinance"] = "finmind"
    finmind_api_url: str = "https://api.finmindtrade.com/api/v4/data"
    finmind_token: Optional[str] = None
    price_lookback_days: int = 30
    price_history_points: int = 14
    request_timeout: float = 15.0

    # Analysis pipeline
    ai_call_delay_seconds: float = 2.0  # pause between sequential AI calls
    analysis_two_stage: bool = True
    news_results: int = 5

    # Ledger defaults for a fresh install
    default_fee_rate: float = 0.1425  # percent
    default_cash: float = 100000.0  # TWD


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
