"""Application configuration via environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/sales_helper"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Pipedrive
    pipedrive_api_token: str = ""
    pipedrive_base_url: str = "https://api.pipedrive.com/v1"
    pipedrive_company_domain: str = "yourcompany"
    pipedrive_pipeline_id: int = 9
    pipedrive_stage_id: int = 57
    pipedrive_user_id: int = 0
    pipedrive_mine_group_field: str = "mine_group"  # org custom field key
    pipedrive_timeout_seconds: float = 30.0

    # live = real Pipedrive deals, mock = simulated deal ids
    external_submit_mode: Literal["live", "mock"] = "mock"

    # Catalog cache
    cache_max_age_seconds: int = 24 * 60 * 60
    cache_stale_ttl_seconds: int = 7 * 24 * 60 * 60

    # Requests
    request_counter_start: int = 1

    # App
    log_level: str = "INFO"
    environment: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
