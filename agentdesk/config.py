"""
Configuration module for Agent Desk CRM.

Provides centralized configuration management for list views, the trash bin,
dashboard defaults and exports.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, get_args, get_origin

import pytz
from pydantic import BaseModel, Field, field_validator, model_validator


class ExportFormat(str, Enum):
    """Supported formats for list exports."""

    CSV = "csv"
    EXCEL = "excel"


class CRMConfig(BaseModel):
    """Central configuration for the CRM.

    Configuration can be loaded from environment variables, from a JSON or
    YAML file, or set programmatically.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (AGENTDESK_ prefix)
        3. Configuration files (JSON or YAML)
        4. Default values (lowest priority)

    Example:
        >>> config = CRMConfig(default_page_size=50, trash_retention_days=30)

        Loading from environment:

        >>> import os
        >>> os.environ['AGENTDESK_DATABASE_URL'] = 'sqlite:///crm.db'
        >>> config = CRMConfig.from_env()

        Loading from file:

        >>> config = CRMConfig.from_file('agentdesk.yaml')
    """

    # General settings
    application_name: str = Field(
        "Agent Desk 360", description="Name of the application"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )
    timezone: str = Field(
        "America/Los_Angeles",
        description="Timezone used for calendar years, months and milestones",
    )
    database_url: str = Field(
        "sqlite:///agentdesk.db", description="SQLAlchemy database URL"
    )
    log_level: str = Field("INFO", description="Root log level for the CLI")

    # List view settings
    default_page_size: int = Field(
        20, description="Rows per page in list views", gt=0, le=500
    )
    page_size_options: List[int] = Field(
        default_factory=lambda: [10, 20, 50, 100],
        description="Page sizes offered in list views",
    )

    # Trash settings
    trash_retention_days: Optional[int] = Field(
        None, description="Days before trashed records are purged", gt=0
    )

    # Dashboard settings
    default_volume_target: float = Field(
        1_000_000, description="Yearly volume goal when none is set", ge=0
    )
    default_unit_target: int = Field(
        10, description="Yearly closed units goal when none is set", ge=0
    )
    default_gci_target: float = Field(
        30_000, description="Yearly GCI goal when none is set", gt=0
    )
    closing_soon_days: int = Field(
        5, description="Window for pending deals closing soon", ge=0
    )
    lead_source_mix_limit: int = Field(
        5, description="Number of sources shown in the lead source mix", gt=0
    )

    # Export settings
    export_filename_prefix: str = Field(
        "agent_desk_leads", description="Prefix for exported lead files"
    )
    export_format: ExportFormat = Field(
        ExportFormat.CSV, description="Default export format"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone is known to pytz."""
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise the log level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @model_validator(mode="after")
    def validate_page_size(self) -> "CRMConfig":
        if self.default_page_size not in self.page_size_options:
            raise ValueError(
                f"default_page_size {self.default_page_size} must be one of "
                f"{self.page_size_options}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "AGENTDESK_") -> "CRMConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]
            field_type = field_info.annotation

            # Optional[T] -> T
            if get_origin(field_type) is Union:
                args = get_args(field_type)
                field_type = next((arg for arg in args if arg is not type(None)), str)

            try:
                if field_type == bool:
                    config_dict[field_name] = value.lower() in (
                        "true",
                        "1",
                        "yes",
                        "on",
                    )
                elif field_type == int:
                    config_dict[field_name] = int(value)
                elif field_type == float:
                    config_dict[field_name] = float(value)
                elif get_origin(field_type) is list:
                    config_dict[field_name] = [
                        item.strip() for item in value.split(",") if item.strip()
                    ]
                elif isinstance(field_type, type) and issubclass(field_type, Enum):
                    config_dict[field_name] = field_type(value)
                else:
                    config_dict[field_name] = value
            except (ValueError, TypeError):
                # Let pydantic report the bad value
                config_dict[field_name] = value

        return cls.model_validate(config_dict)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CRMConfig":
        """
        Load configuration from a JSON or YAML file.

        Args:
            path: Path to a .json, .yaml or .yml file

        Returns:
            Configuration instance
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")

        if path.suffix.lower() in (".yaml", ".yml"):
            import yaml

            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        return cls.model_validate(data)


# Global configuration instance
_config: Optional[CRMConfig] = None


def get_config() -> CRMConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = CRMConfig.from_env()

    return _config


def set_config(config: Optional[CRMConfig]) -> None:
    """
    Set the global configuration instance.

    Passing None drops the cached instance so the next get_config() call
    reloads it from the environment.
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> CRMConfig:
    """
    Configure the CRM with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = CRMConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = CRMConfig(**config_dict)

    return _config
