"""
Configuration module for the SOL Flywheel.

This module provides utilities for loading, validating, and accessing
configuration settings from YAML files and environment variables.
"""
import os
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sol_flywheel.core.constants import (
    DEFAULT_FEE_RESERVE_SOL,
    DEFAULT_MAX_SPEND_SOL,
    DEFAULT_MIN_SPEND_SOL,
    DEFAULT_RPC_URL,
    DEFAULT_SETTLEMENT_DELAY_SECONDS,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_SWAP_BASE_URL,
    DEFAULT_TICK_INTERVAL_SECONDS,
)
from sol_flywheel.core.exceptions import ConfigError
from sol_flywheel.core.logger import logger
from sol_flywheel.core.models import DisposalMode
from sol_flywheel.core.utils import parse_pubkey


# Type variable for configuration models
T = TypeVar('T', bound=BaseSettings)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    DEVNET = "devnet"
    PRODUCTION = "production"


class SolanaConfig(BaseModel):
    """Ledger connection and treasury wallet."""
    rpc_url: str = DEFAULT_RPC_URL
    wallet_keypair_path: Optional[str] = None
    wallet_secret_key: Optional[SecretStr] = None


class SwapConfig(BaseModel):
    """Swap venue configuration."""
    base_url: str = DEFAULT_SWAP_BASE_URL
    slippage_bps: int = Field(default=DEFAULT_SLIPPAGE_BPS, ge=0, le=10_000)
    prioritization_fee_lamports: int = Field(default=0, ge=0)
    timeout_seconds: float = Field(default=15.0, gt=0)


class FlywheelConfig(BaseModel):
    """Spend policy and disposal settings."""
    target_mint: str
    fee_reserve_sol: Decimal = Field(default=DEFAULT_FEE_RESERVE_SOL, ge=0)
    min_spend_sol: Decimal = Field(default=DEFAULT_MIN_SPEND_SOL, ge=0)
    max_spend_sol: Decimal = Field(default=DEFAULT_MAX_SPEND_SOL, ge=0)
    disposal_mode: DisposalMode = DisposalMode.BURN
    tick_interval_seconds: int = Field(default=DEFAULT_TICK_INTERVAL_SECONDS, gt=0)
    settlement_delay_seconds: float = Field(default=DEFAULT_SETTLEMENT_DELAY_SECONDS, ge=0)

    @field_validator("target_mint")
    @classmethod
    def validate_target_mint(cls, value: str) -> str:
        return str(parse_pubkey(value))

    @field_validator("disposal_mode", mode="before")
    @classmethod
    def normalize_disposal_mode(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_spend_bounds(self) -> "FlywheelConfig":
        """Ensure the minimum spend does not exceed the maximum."""
        if self.min_spend_sol > self.max_spend_sol:
            raise ValueError(
                f"min_spend_sol ({self.min_spend_sol}) exceeds max_spend_sol ({self.max_spend_sol})"
            )
        return self


class AdminConfig(BaseModel):
    """Identity allowed to start and stop the flywheel."""
    allowed_pubkey: str

    @field_validator("allowed_pubkey")
    @classmethod
    def validate_allowed_pubkey(cls, value: str) -> str:
        return str(parse_pubkey(value))


class ApiConfig(BaseModel):
    """Control API server configuration."""
    host: str = "0.0.0.0"
    port: int = 8787
    frontend_origins: list[str] = Field(default_factory=lambda: ["http://localhost:8080"])

    @field_validator("frontend_origins", mode="before")
    @classmethod
    def split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


class StorageConfig(BaseModel):
    """Where the flywheel state is persisted."""
    state_file: str = "data/metrics.json"


class AppConfig(BaseSettings):
    """Main application configuration."""
    model_config = SettingsConfigDict(
        env_prefix="SOL_FLYWHEEL_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    metrics_port: int = 9108

    # Components
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    swap: SwapConfig = Field(default_factory=SwapConfig)
    flywheel: FlywheelConfig
    admin: AdminConfig
    api: ApiConfig = Field(default_factory=ApiConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


def get_config_dir() -> Path:
    """Directory holding the optional YAML files: ``SOL_FLYWHEEL_CONFIG_DIR`` or ./config."""
    return Path(os.environ.get("SOL_FLYWHEEL_CONFIG_DIR") or Path.cwd() / "config")


def get_environment() -> Environment:
    """
    Read the environment name from ``SOL_FLYWHEEL_ENVIRONMENT``.

    Returns:
        Current environment, DEVELOPMENT when unset or unknown
    """
    env_name = os.environ.get("SOL_FLYWHEEL_ENVIRONMENT", Environment.DEVELOPMENT.value).lower()

    try:
        return Environment(env_name)
    except ValueError:
        logger.warning(f"Unknown environment '{env_name}', falling back to development")
        return Environment.DEVELOPMENT


def load_yaml_config(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read one YAML overlay.

    Args:
        file_path: YAML file to read

    Returns:
        Mapping of settings, empty when the file is absent or blank

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    path = Path(file_path)
    if not path.is_file():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error(f"Cannot parse YAML configuration file: {path}", exc_info=True)
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``; nested mappings merge key by key.

    Args:
        base: Lower-priority settings
        override: Higher-priority settings

    Returns:
        Merged mapping
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_class: Type[T],
    config_name: str,
    environment: Optional[Environment] = None
) -> T:
    """
    Load and validate configuration.

    ``<config_name>.yaml`` and ``<config_name>.<environment>.yaml`` are both
    optional; values they set win over ``SOL_FLYWHEEL_*`` environment
    variables, which fill in everything else.

    Args:
        config_class: Pydantic settings class for validation
        config_name: Base name of the YAML files
        environment: Environment overlay to apply (default: current environment)

    Returns:
        Validated configuration object

    Raises:
        ConfigError: If the configuration is missing or invalid
    """
    environment = environment or get_environment()
    config_dir = get_config_dir()

    overlays = [
        config_dir / f"{config_name}.yaml",
        config_dir / f"{config_name}.{environment.value}.yaml",
    ]
    config_data: Dict[str, Any] = {}
    for overlay in overlays:
        config_data = deep_merge(config_data, load_yaml_config(overlay))

    try:
        return config_class(**config_data)
    except ValidationError as e:
        logger.error(
            f"Invalid {config_name} configuration",
            errors=e.errors(include_url=False, include_context=False),
        )
        raise ConfigError(f"Invalid {config_name} configuration: {e}") from e


def load_app_config() -> AppConfig:
    """Load the flywheel's ``app`` configuration."""
    return load_config(AppConfig, "app")


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    return load_app_config()
