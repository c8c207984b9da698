"""Application configuration via environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STASH_BATTLE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database (persistent cache tier and session state)
    db_path: Path = Field(
        default=Path.home() / ".config" / "stash-battle" / "stash-battle.db",
        description="Path to SQLite database file",
    )

    # Stash server
    stash_url: str = Field(
        default="http://localhost:9999",
        description="Base URL of the Stash server (GraphQL lives at /graphql)",
    )
    stash_api_key: str = Field(
        default="",
        description="Stash API key. If empty, requests are sent unauthenticated.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for GraphQL requests",
    )

    # Battle tuning
    cache_max_age_seconds: float = Field(
        default=300.0,  # 5 minutes
        description="Age after which a cached scene list is refreshed in the background",
    )
    swiss_neighbor_reach: int = Field(
        default=5,
        description="Rank positions above and below a scene searched for a Swiss opponent",
    )
    random_pair_sample_size: int = Field(
        default=100,
        description="Scenes sampled when falling back to an unranked random pair",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings() -> Settings:
    """Load application settings from the environment."""
    return Settings()
