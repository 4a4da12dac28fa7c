"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class QuotesConfig(BaseModel):
    """Quote provider access and rate-limit policy."""

    base_url: str = "https://finnhub.io/api/v1"
    timeout_seconds: float = 10.0
    max_retries: int = Field(default=1, ge=0)  # retries after the first attempt
    # Free tier allows 60 calls/minute
    delay_seconds: float = 1.0
    fetch_mode: Literal["sequential", "alternating"] = "alternating"
    batch_groups: int = 2


class CacheConfig(BaseModel):
    """Freshness windows for each cache tier, in seconds."""

    shared_ttl_seconds: int = 300
    local_ttl_seconds: int = 60
    direct_fetch_on_miss: bool = True


class SchedulerConfig(BaseModel):
    """Job scheduling for price refresh and daily close."""

    refresh_minutes: int = 1
    close_hour: int = 16  # America/New_York
    close_minute: int = 30
    embedded: bool = False  # Run the refresh job inside the API server


class ContestConfig(BaseModel):
    """Contest data file and draft shape."""

    players_file: str = "players.json"
    stocks_per_player: int = 10


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Runtime
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "http://localhost:3000"

    # Secrets
    finnhub_api_key: str = ""
    cron_secret: str = ""
    redis_url: str = ""
    logfire_token: str = ""

    # Nested configuration sections
    quotes: QuotesConfig = Field(default_factory=QuotesConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    contest: ContestConfig = Field(default_factory=ContestConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def players_path(self) -> Path:
        return self.data_dir / self.contest.players_file

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m stockdraft init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["quotes", "cache", "scheduler", "contest"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
