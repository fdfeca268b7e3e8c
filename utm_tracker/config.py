"""UTM Tracker — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Gallabox Webhook ──
    gallabox_token: Optional[str] = None
    gallabox_token_secret_name: str = "utm-tracker/gallabox-token"
    whatsapp_number: str = "919137279145"  # Only messages to this number are attributed

    # ── Attribution ──
    default_country_code: str = "91"
    store_direct_messages: bool = False
    id_match_window_minutes: int = 5

    # ── Google Sheets ──
    google_credentials: Optional[str] = None  # Service account JSON
    google_credentials_secret_name: str = "utm-tracker/google-credentials"
    sheets_spreadsheet_id: str = ""
    sheets_sheet_name: str = "Sheet1"

    # ── Export ──
    sync_batch_size: int = 250
    sync_max_retries: int = 3
    sync_retry_base_delay: float = 2.0  # seconds, multiplied by attempt number
    realtime_sync_enabled: bool = True
    realtime_retry_delay: float = 60.0

    # ── AWS ──
    aws_region: str = "ap-south-1"

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_interval_minutes: int = 15

    @property
    def effective_database_url(self) -> str:
        """Return the configured database URL, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # App Runner / Lambda images have a read-only working directory
        if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
            return "sqlite:////tmp/utm_tracker.db"
        return "sqlite:///./utm_tracker.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
