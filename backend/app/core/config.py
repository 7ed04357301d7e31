import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):

    port: int = 8000
    environment: str = "development"

    postgres_user: str = os.getenv("POSTGRES_USER", "user")
    postgres_password: str = os.getenv("POSTGRES_PASSWORD", "password")
    postgres_db: str = os.getenv("POSTGRES_DB", "exam_integrity_db")
    postgres_host: str = os.getenv("POSTGRES_HOST", "db")
    postgres_port: int = 5432

    # Full URL wins over the postgres_* parts (tests use sqlite://)
    sqlalchemy_database_uri: Optional[str] = None
    db_pool_size: int = 20
    db_max_overflow: int = 40

    @property
    def database_url(self) -> str:
        if self.sqlalchemy_database_uri:
            return self.sqlalchemy_database_uri
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    cors_origins_str: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins_str.split(",")]

    # Empty redis_url means the session lock backend is not configured
    redis_url: Optional[str] = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_max_connections: int = 20
    cache_default_ttl: int = 300
    execution_type_cache_ttl: int = 30

    session_lock_ttl_seconds: int = 60
    session_lock_prefix: str = "exam:session:lock"

    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
    celery_task_always_eager: bool = False
    metrics_reconcile_interval: float = 600.0

    # Escalation and risk policy
    review_flag_threshold: int = 5
    terminate_threshold: int = 10
    risk_points_per_violation: float = 15.0
    risk_score_cap: float = 100.0
    risk_level_medium_threshold: int = 5
    risk_level_high_threshold: int = 7
    risk_level_critical_threshold: int = 10

    recent_events_limit: int = 50

    default_timezone: str = "UTC"
    timezone_display_format: str = "%d.%m.%Y, %H:%M:%S"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
