from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./walletcast.db"
    log_level: str = "INFO"

    # Wallet notification gateway
    wallet_gateway_base_url: str = "https://api.pub2.passkit.io"
    wallet_gateway_api_token: str = ""
    wallet_gateway_timeout_seconds: float = 5.0

    # Broadcast dispatch
    broadcast_batch_size: int = Field(default=50, ge=1)
    broadcast_batch_delay_ms: int = Field(default=200, ge=0)
    broadcast_min_message_length: int = 5
    broadcast_max_message_length: int = 500
    broadcast_sample_size: int = 5
    segment_estimate_cache_ttl_seconds: float = 60.0

    # Birthday rewards
    birthday_detail_limit: int = 200

    # Recurring job scheduler
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
