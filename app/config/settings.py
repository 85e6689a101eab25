from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Flashcard Study Service"
    database_url: str = "sqlite:///./app.db"
    log_level: str = "INFO"

    # XP & leveling
    base_level_xp: int = 100
    xp_level_multiplier: float = 1.2

    # Spaced repetition
    default_ease_factor: float = 2.5
    mastery_interval_days: int = 21
    mastery_min_repetitions: int = 6

    guest_session_retention_days: int = 7

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
