from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "AccessGraph"
    debug: bool = False

    # Relationship store
    database_url: str = "sqlite:///./accessgraph.db"
    store_timeout_seconds: float = 5.0
    store_page_size: int = 500

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    # Policy
    role_defaults_path: Optional[str] = None  # YAML file replacing built-in defaults

    # Audit
    audit_enabled: bool = True
    audit_retention_days: Optional[int] = 365  # None keeps entries indefinitely
    audit_max_retries: int = 5
    audit_retry_delay: int = 30  # seconds

    # Sweeps
    expiry_sweep_interval: int = 300  # seconds
    audit_purge_interval: int = 86400  # seconds

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
