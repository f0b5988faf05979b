from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobingest"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    base_currency: str = "USD"
    default_country: str = "IN"
    dedupe_fuzzy_threshold: float = 0.88
    cache_backend: Literal["memory", "postgres"] = "memory"
    cache_ttl_seconds: int = 300
    cache_hot_list_ttl_seconds: int = 120
    audit_enabled: bool = True
    pii_enabled: bool = False
    pii_redacted_fields: str = "email,phone"
    max_batch_size: int = 500
    bulk_concurrency: int = 8
    ensure_indexes_on_start: bool = True
    otel_enabled: bool = False
    otel_service_name: str = "jobingest"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JOBINGEST_", extra="ignore")

    @property
    def pii_redacted_field_list(self) -> list[str]:
        return [item.strip().lower() for item in self.pii_redacted_fields.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
