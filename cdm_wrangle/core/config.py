"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Extraction settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CDM_WRANGLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///omop.db"
    target_schema: str | None = None
    debug: bool = False

    # Extraction defaults
    chunk_size: int = 5000
    cadence: float = 1.0

    # Concept metadata (None uses the packaged fixture)
    concept_metadata_path: str | None = None


settings = Settings()
