from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Orderflow"
    site_name: str = "Orderflow Store"
    debug: bool = False
    currency: str = "USD"

    # Database
    database_url: str = "sqlite:///./orderflow.db"

    # Notifications
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: str = "noreply@orderflow.local"
    smtp_from_name: str = "Orderflow"
    smtp_use_tls: bool = True
    notification_timeout: float = 10.0  # seconds before a notification is abandoned
    notification_workers: int = 4

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
