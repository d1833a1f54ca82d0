from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Runtime configuration for the assignment engine service.

    Every field can be overridden with an ``EXPERIMENT_ENGINE_`` prefixed
    environment variable or an entry in ``.env``.
    """

    database_url: str = Field(
        "sqlite:///./experiments.db",
        description="SQLAlchemy URL for the experiment catalog and exposure ledger.",
    )
    tokens: List[str] = Field(
        default_factory=list,
        description="Bearer tokens accepted by the HTTP layer.",
    )
    log_level: str = "INFO"
    exposure_dedup: bool = Field(
        True,
        description="Record exposures in the durable ledger so each surface counts once.",
    )
    ledger_timeout_seconds: float = Field(
        2.0,
        gt=0,
        description="Longest wait for a database connection before an exposure skips the ledger.",
    )
    load_catalog_on_startup: bool = True

    model_config = SettingsConfigDict(
        env_prefix="EXPERIMENT_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()
