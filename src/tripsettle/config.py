"""Configuration management for tripsettle."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TRIPSETTLE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Directory holding one <trip_id>.json export per trip
    trips_path: Path = Path.home() / ".tripsettle" / "trips"

    # Strategy used when the caller does not pick one
    default_strategy: str = "net_balance_greedy"

    # Display only; the engine is currency agnostic
    currency_symbol: str = "₹"


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your TRIPSETTLE_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
