"""Engine configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (MEDSAFETY_*)."""

    model_config = SettingsConfigDict(
        env_prefix="MEDSAFETY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Medication Safety Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Knowledge base
    # JSON file whose tables are merged over the built-in knowledge base
    knowledge_base_file: Path | None = None

    # Patients younger than this get weight-banded dose checks
    pediatric_age_threshold: int = 18


settings = Settings()
