"""Configuration management using Pydantic Settings."""

from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SimulationSettings(BaseSettings):
    """Defaults for simulation runs."""

    default_iterations: int = Field(default=1000, gt=0, alias="SIM_ITERATIONS")
    # Progress callbacks fire on iteration 0, every Nth iteration and the last one
    progress_interval: int = Field(default=100, gt=0, alias="SIM_PROGRESS_INTERVAL")
    histogram_bins: int = Field(default=20, gt=0, alias="SIM_HISTOGRAM_BINS")
    risk_threshold: float = Field(default=0.0, alias="SIM_RISK_THRESHOLD")
    seed: Optional[int] = Field(default=None, alias="SIM_SEED")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    level: str = Field(default="INFO", alias="LOG_LEVEL")
    format: Literal["console", "json"] = Field(default="console", alias="LOG_FORMAT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        """Accept level names in any case."""
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return level


class StorageSettings(BaseSettings):
    """Where simulation documents live."""

    simulations_dir: str = Field(default="simulations", alias="SIMULATIONS_DIR")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class Settings(BaseSettings):
    """Master settings aggregator."""

    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
