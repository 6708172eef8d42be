"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SearchConfig(BaseSettings):
    """Incremental search configuration."""

    debounce_ms: int = 300
    min_query_length: int = 2
    result_limit: int = 20
    preload_limit: int = 100
    scope: Literal["internal", "external", "verified"] = "internal"
    entity_type: Literal["all", "customer", "supplier"] = "all"
    enable_ranking: bool = True

    @field_validator("debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        """Validate the quiet interval is within a usable range."""
        if not 50 <= v <= 2000:
            raise ValueError("debounce_ms must be between 50 and 2000")
        return v

    @field_validator("min_query_length")
    @classmethod
    def validate_min_query_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_query_length must be at least 1")
        return v

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class FormConfig(BaseSettings):
    """Party form configuration."""

    default_mode: Literal["quick", "full"] = "full"
    default_role: Literal["customer", "supplier"] = "customer"
    auto_close_delay_ms: int = Field(default=1500, ge=0)
    default_country: str = "INDIA"

    @property
    def auto_close_delay_seconds(self) -> float:
        return self.auto_close_delay_ms / 1000.0


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "logs/partylink.log"
    rotation: str = "10 MB"
    retention: int = 3


class DirectoryConfig(BaseSettings):
    """Directory service connection settings from environment variables."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    directory_base_url: str = Field(default="http://localhost:5000")
    directory_api_token: str = Field(default="")
    directory_company_id: str = Field(default="")
    directory_timeout: float = Field(default=30.0, gt=0)


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    search: SearchConfig = Field(default_factory=SearchConfig)
    form: FormConfig = Field(default_factory=FormConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win).

        This is used to apply environment-derived overrides on top of YAML defaults.
        """
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML file is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Nested BaseSettings do not pick up plain env vars (e.g. DIRECTORY_COMPANY_ID)
        # through the parent model, so directory overrides are computed separately.
        env_overrides = cls().model_dump(exclude_defaults=True)

        directory_env_overrides = DirectoryConfig().model_dump(exclude_defaults=True)
        if directory_env_overrides:
            env_overrides["directory"] = cls._deep_merge_dict(
                (
                    yaml_config.get("directory", {})
                    if isinstance(yaml_config.get("directory", {}), dict)
                    else {}
                ),
                directory_env_overrides,
            )

        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def validate_config(self) -> None:
        """Validate configuration settings.

        Raises:
            ValueError: If configuration is invalid
        """
        base_url = self.directory.directory_base_url
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"Directory base URL must be http(s): {base_url}")

        is_local = any(host in base_url for host in ("localhost", "127.0.0.1"))
        if not is_local and not self.directory.directory_company_id:
            raise ValueError("Company context (DIRECTORY_COMPANY_ID) required for a remote directory")

        if self.search.result_limit < 1 or self.search.preload_limit < 1:
            raise ValueError("Search limits must be positive")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create global configuration instance.

    Returns:
        Global Config instance

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        Loaded and validated Config instance
    """
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config()
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
