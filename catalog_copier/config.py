"""
Configuration management.
Simple .env based config for VPS deployment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Database
    database_path: str = "./data/app.db"

    # Destination Admin API
    shopify_api_version: str = "2025-01"

    # Source storefronts
    source_request_timeout: float = 30.0  # seconds per call
    source_user_agent: str = "Catalog Copier"
    listing_page_size: int = 250
    listing_page_delay: float = 0.5  # seconds between listing pages

    # Bulk import
    bulk_item_delay: float = 1.0  # seconds between products
    progress_log_limit: int = 50

    # Scheduled sync
    sync_frequency_hours: int = 24

    # Logging
    log_level: str = "INFO"


# Global settings instance
settings = Settings()
