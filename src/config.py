"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "RingPulse"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Oura API ---
    oura_api_base: str = "https://api.ouraring.com"
    oura_personal_token: str = ""  # direct token; empty means use the secret store
    oura_request_timeout_s: float = 30.0

    # --- Credentials ---
    credential_store: Literal["keychain", "memory"] = "keychain"
    keychain_service: str = "com.ringpulse.oura"
    keychain_account: str = "oura-personal-access-token"

    # --- Retry / pagination ---
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 30.0
    max_pages: int | None = 500  # null disables the page ceiling

    # --- Refresh defaults (overridden by the preferences file) ---
    refresh_interval_minutes: int = 15
    history_period_days: int = 7
    preferences_path: str = ""  # empty = ~/.config/ringpulse/preferences.yaml

    # --- Power state ---
    power_source: Literal["pmset", "manual"] = "manual"
    power_poll_seconds: float = 60.0

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
