"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class WorkdayConfig(BaseModel):
    """Working window applied to every analysed day."""
    start_hour: int = 9
    end_hour: int = 17

    @field_validator("start_hour")
    @classmethod
    def validate_start_hour(cls, v: int) -> int:
        """Validate start hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"start_hour must be between 0 and 23, got {v}")
        return v

    @field_validator("end_hour")
    @classmethod
    def validate_end_hour(cls, v: int) -> int:
        """Validate end hour is between 1 and 24."""
        if not 1 <= v <= 24:
            raise ValueError(f"end_hour must be between 1 and 24, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "WorkdayConfig":
        """Ensure the configured window opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self


class SyncConfig(BaseModel):
    """Background refresh settings."""
    auto_sync_minutes: int = 0  # 0 = disabled

    @field_validator("auto_sync_minutes")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("auto_sync_minutes must not be negative")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    client_id: str = ""
    tenant_id: str = "common"
    timezone: str = "Europe/Berlin"
    workday: WorkdayConfig = Field(default_factory=WorkdayConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    calendar_id: str = ""  # empty = all calendars
    min_duration_minutes: int = 0
    mock_data_file: Optional[Path] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("min_duration_minutes")
    @classmethod
    def validate_min_duration(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min_duration_minutes must not be negative")
        return value

    @property
    def has_graph_credentials(self) -> bool:
        return bool(self.client_id)

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative data paths are resolved against the config file
        if config.mock_data_file is not None and not config.mock_data_file.is_absolute():
            config.mock_data_file = config_path.parent / config.mock_data_file

        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load the configuration, falling back to defaults when no file exists
    and no explicit path was given.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)
    return AppConfig()
