from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SCOPES = [
    # Tampa Bay
    "Tampa,FL,33602",
    "St Petersburg,FL,33701",
    "Clearwater,FL,33755",
    # Polk County
    "Lakeland,FL,33801",
    "Winter Haven,FL,33880",
    # Greater Orlando
    "Orlando,FL,32801",
    "Kissimmee,FL,34741",
    "Winter Park,FL,32789",
    # Daytona area
    "Daytona Beach,FL,32114",
    "Port Orange,FL,32127",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./listing_sync.db"
    app_version: str = "2026-10-18.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Providers ----
    simplyrets_base_url: str = "https://api.simplyrets.com"
    simplyrets_username: str = "simplyrets"  # public demo account
    simplyrets_password: str = "simplyrets"

    rapidapi_key: str | None = None
    realty_in_us_host: str = "realty-in-us.p.rapidapi.com"
    us_real_estate_host: str = "us-real-estate-listings.p.rapidapi.com"
    zillow_host: str = "zillow-com1.p.rapidapi.com"

    http_timeout_seconds: float = 30.0
    provider_request_delay_seconds: float = 1.0
    provider_max_retries: int = 2
    provider_retry_base_seconds: float = 2.0
    provider_retry_max_seconds: float = 60.0

    # ---- Sync ----
    sync_default_providers: list[str] | str = ["simplyrets"]
    sync_default_scopes: list[str] | str = DEFAULT_SCOPES
    sync_page_size: int = 200
    sync_max_pages: int = 25
    sync_batch_size: int = 100
    sync_max_concurrency: int = 2
    sync_full_sync_max_age_hours: int = 24
    max_images_per_listing: int = 20

    # Provider-reported sold/off-market short-circuits the retention window.
    honor_provider_delisting: bool = False

    # ---- Sweeper ----
    retention_window_days: int = 7
    sweep_sample_size: int = 10

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    sync_schedule_hour: int = 2

    # ---- Logging ----
    log_level: str = "INFO"
    http_log_level: str = "WARNING"  # httpx logs every request at INFO
    sql_log_level: str = "WARNING"

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        if env in ("prod", "production"):
            # Demo SimplyRETS account only serves sample listings.
            if self.simplyrets_username == "simplyrets" and self.simplyrets_password == "simplyrets":
                if "simplyrets" in _as_list(self.sync_default_providers):
                    raise ValueError("CONFIG: demo SimplyRETS credentials are not allowed in prod")

        if int(self.sync_max_concurrency) < 1:
            object.__setattr__(self, "sync_max_concurrency", 1)


def _as_list(val: list[str] | str | None) -> list[str]:
    if val is None:
        return []
    if isinstance(val, str):
        # "a;b" for scopes (scopes contain commas), "a,b" for plain names
        sep = ";" if ";" in val else ","
        return [x.strip() for x in val.split(sep) if x.strip()]
    return [str(x).strip() for x in val if str(x).strip()]


def default_providers() -> list[str]:
    return _as_list(settings.sync_default_providers)


def default_scopes() -> list[str]:
    val = settings.sync_default_scopes
    if isinstance(val, str):
        return [x.strip() for x in val.split(";") if x.strip()]
    return _as_list(val)


settings = Settings()
