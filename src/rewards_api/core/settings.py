from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./rewards.db"
    database_echo: bool = False

    # Admin API security
    admin_api_key: str = ""

    # Reward defaults used to seed the app_settings row on first read
    default_daily_reward_points: int = Field(default=100, ge=0)
    default_ad_reward_points: int = Field(default=50, ge=0)
    default_referral_reward_points: int = Field(default=200, ge=0)
    default_min_withdraw_ton: int = Field(default=1000, ge=1)
    default_min_withdraw_stars: int = Field(default=500, ge=1)
    default_ad_cooldown_seconds: int = Field(default=60, ge=0)
    default_ad_block_id: str | None = None

    # Ledger policy
    daily_claim_window_hours: int = Field(default=24, ge=1)
    withdrawal_refund_on_reject: bool = True
    referral_code_length: int = Field(default=8, ge=6, le=32)

    # Listing defaults
    ledger_page_size: int = 50

    # Observability
    tracing_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
