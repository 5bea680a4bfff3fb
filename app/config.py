"""All settings, loaded from the .env file."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    app_url: str = "http://localhost:8000"
    database_url: str = "sqlite:///./procure.db"
    log_level: str = "INFO"

    # Text generation (OpenAI-compatible chat completions endpoint)
    llm_api_url: str = "https://api.openai.com/v1/chat/completions"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: int = 30

    # Outbound mail
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""

    # Inbound mail
    imap_host: str = ""
    imap_port: int = 993
    imap_user: str = ""
    imap_password: str = ""

    # Behavior
    poll_interval_minutes: int = 5
    inbox_lookback_hours: int = 24
    send_concurrency: int = 5
    placeholder_title: str = "Auto-generated title"

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    @property
    def inbox_configured(self) -> bool:
        return bool(self.imap_host and self.imap_user and self.imap_password)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
