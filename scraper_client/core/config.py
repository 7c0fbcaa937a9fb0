from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from scraper_client.core.environment import DEFAULT_ENV_FILE, LoginUsersRestriction


class Settings(BaseSettings):
    environment: str = "dev"
    env_file: str = DEFAULT_ENV_FILE
    env: str | None = None
    login_users_restriction: LoginUsersRestriction = LoginUsersRestriction.NONE
    dummy_mode: bool = False
    request_timeout_seconds: float = 10.0
    retry_max_attempts: int = Field(default=5, ge=1)
    retry_backoff_step_seconds: float = Field(default=4.0, ge=0)
    otel_enabled: bool = True
    otel_service_name: str = "rtcv-scraper-client"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="RTCV_SCRAPER_CLIENT_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
