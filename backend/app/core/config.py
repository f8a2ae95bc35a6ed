"""Application configuration via pydantic-settings.

All values loaded from .env file at the project root.
The .env file takes precedence over OS-level environment variables
so stale system env vars never shadow the project config.
Generation/embedding keys may also be saved at runtime in the
app_settings table; see app/services/settings.py for the lookup order.
"""

from pathlib import Path
from typing import Tuple, Type

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

# Resolve .env from project root (three levels up from this file: app/core/config.py → backend → project root)
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"

# Value shipped in the sample .env; treated as "no key configured".
PLACEHOLDER_GEMINI_KEY = "MY_GEMINI_API_KEY"


class Settings(BaseSettings):
    """Central application settings. .env file wins over OS env vars."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Override source priority: .env file > OS env vars > defaults."""
        return (init_settings, dotenv_settings, env_settings, file_secret_settings)

    # --- LLM ---
    gemini_api_key: str = ""
    groq_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_embedding_model: str = "models/text-embedding-004"
    groq_model: str = "llama-3.3-70b-versatile"
    llm_timeout_seconds: float = 10.0

    # --- Retrieval ---
    chunk_size: int = 1000
    retrieval_limit: int = 3

    # --- Database ---
    database_url: str = "sqlite+aiosqlite:///./chatbot.db"
    redis_url: str = ""
    turn_lock_timeout_seconds: int = 60
    turn_lock_wait_seconds: float = 30.0

    # --- Auth ---
    admin_username: str = "admin"
    admin_password: str = "admin"
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24

    # --- WhatsApp (WPPConnect server) ---
    wppconnect_url: str = "http://localhost:21465"
    wppconnect_session: str = "deskchat"
    wppconnect_secret_key: str = ""
    whatsapp_webhook_url: str = ""  # e.g. https://host/v1/whatsapp/webhook
    whatsapp_max_retries: int = 3
    whatsapp_transient_status_codes: str = "429,502,503,504"
    whatsapp_reconnect_max_attempts: int = 5
    whatsapp_watchdog_interval_seconds: int = 60
    whatsapp_autoconnect: bool = False

    # --- App ---
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
