"""Application configuration.

Loads settings from environment variables with sensible defaults.
Provider URLs left empty select the logging/simulated implementations.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication
    giftflare_api_key: str = "dev-api-key-change-in-production"

    # Persistence
    order_store_backend: str = "memory"  # "memory" or "sql"
    database_url: str = "postgresql+asyncpg://giftflare:giftflare_dev_password@db:5432/giftflare"
    create_tables_on_startup: bool = True

    # Profile directory
    profile_directory_url: str = ""
    profile_timeout_seconds: float = 5.0

    # Notification providers
    email_provider_url: str = ""
    email_provider_api_key: str = ""
    sms_provider_url: str = ""
    sms_provider_api_key: str = ""
    notification_timeout_seconds: float = 10.0
    notification_max_attempts: int = 3
    notification_backoff_seconds: float = 0.5
    notify_on_cancellation: bool = True

    # Courier
    courier_url: str = ""
    courier_api_key: str = ""
    courier_timeout_seconds: float = 15.0
    simulated_courier_delay_seconds: float = 1.0
    simulated_courier_prefix: str = "DUNZO"

    # Pricing and delivery rules
    gift_wrap_surcharge_paise: int = 5000
    instant_delivery_cities: list[str] = [
        "Mumbai",
        "Delhi",
        "Bangalore",
        "Hyderabad",
        "Chennai",
        "Pune",
    ]

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
