"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Habit Alarms Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///./habit.db"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "habit"

    notifications_enabled: bool = True
    notifications_permission_default: str = "granted"
    full_priority_backend_enabled: bool = True
    full_priority_module: str = "jnius"
    android_alarm_receiver: str = "org.habit.tracker.AlarmReceiver"
    scheduler_timezone: str = "UTC"
    alarm_min_lead_seconds: int = 1
    alarm_safety_margin_seconds: int = 10
    alarm_channel_id: str = "alarm"
    alarm_channel_name: str = "Task Alarms"
    snooze_default_minutes: int = 5
    reschedule_on_startup: bool = True

    chat_upstream_url: str = "http://localhost:11434/api/generate"
    chat_timeout_seconds: float = 45.0
    chat_max_retries: int = 2
    chat_retry_delay_seconds: float = 1.0
    chat_default_model: str = "tinyllama"
    chat_allowed_models: list[str] = ["tinyllama", "mistral-small:22b", "llama3:latest", "llama2:70b"]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
