from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SlipPolicy(str, Enum):
    ABSORB = "absorb"
    KEEP = "keep"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    # Amounts are integer cents, so 0 already means "below one cent".
    tolerance_cents: int = Field(1, ge=0, alias="TOLERANCE_CENTS")
    slip_policy: SlipPolicy = Field(SlipPolicy.ABSORB, alias="SLIP_POLICY")
    reject_inconsistent_splits: bool = Field(False, alias="REJECT_INCONSISTENT_SPLITS")
    currency: str = Field("EUR", alias="CURRENCY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
