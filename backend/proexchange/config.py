from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    app_name: str = "ProExchange Workflow API"
    database_url: str = "sqlite:///./data/proexchange.db"
    debug: bool = False

    # Identity provider tokens
    secret_key: str = "dev-secret-key-change-in-production"
    auth_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    cors_origins: list[str] = ["http://localhost:3000"]

    # Celery configuration
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"
    # Connect and socket timeout for publishing from the API process
    celery_broker_timeout_seconds: float = 1.0

    # Notifications: "celery" queues deliveries, "log" only logs them in-process
    notification_backend: str = "celery"

    # Transactional email API
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    email_from: str = "ProExchange <notifications@proexchange.local>"
    email_timeout_seconds: float = 10.0
    app_url: str = "http://localhost:3000"

    # Firm bench
    invite_expiry_days: int = 14
    bench_priority_base: int = 100
    bench_priority_step: int = 10

    # Pending connection reminder digest
    reminders_enabled: bool = False
    reminder_interval_hours: int = 24
    reminder_min_age_hours: int = 48

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
