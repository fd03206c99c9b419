"""
Process-level settings, read from the environment (prefix ADGOV_) or a .env file.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ADGOV_", env_file=".env", extra="ignore")

    app_name: str = "Ad Governance Kernel"
    log_level: str = "INFO"

    # Agent pipeline
    can_recommend_threshold: float = 70.0
    default_benchmark: float = 50.0

    # Persistence
    run_store_path: str = ":memory:"

    # Orbs
    max_outstanding_suggestions: int = 3

    # Neighbor prediction
    neighbor_half_life_days: float = 30.0
    neighbor_min_count: int = 5
    neighbor_min_similarity: float = 0.5


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
