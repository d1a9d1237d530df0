"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"
    llm_timeout_ms: int = 3000
    llm_max_retries: int = 2
    llm_retry_delay_ms: int = 300
    llm_retry_backoff: float = 2.0

    # Twilio (optional: outreach reports a configuration error when missing)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_max_retries: int = 2
    twilio_retry_delay_ms: int = 300
    twilio_retry_backoff: float = 2.0

    # Database
    database_url: str = "sqlite+aiosqlite:///./outreach.db"

    # Public URL used for webhook callbacks (falls back to the request URL)
    base_url: Optional[str] = None

    # Campaign voice
    company_name: str = "ArrayLink AI"
    voice: str = "alice"
    language: str = "en-US"
    default_phone_region: str = "US"

    # Call sessions
    session_ttl_seconds: int = 30 * 60
    session_sweep_interval_seconds: int = 5 * 60
    session_sweep_chunk_size: int = 100

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def twilio_configured(self) -> bool:
        """Whether all Twilio credentials are present."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )


settings = Settings()
