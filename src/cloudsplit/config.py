from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    bot_token: str = Field(..., alias="BOT_TOKEN")
    database_url: str = Field(..., alias="DATABASE_URL")
    tz: str = Field("Asia/Taipei", alias="TZ")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    query_timeout_seconds: float = Field(15.0, alias="QUERY_TIMEOUT_SECONDS", gt=0)
    fetch_batch_size: int = Field(100, alias="FETCH_BATCH_SIZE", ge=1, le=1000)
    currency_symbol: str = Field("$", alias="CURRENCY_SYMBOL")

    @property
    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.tz)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
