"""Configuration module: load and validate orchestrator settings."""

import os
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, ValidationError
from ..utils.errors import ConfigError
from ..utils.logging import get_logger
from .manager import load_config, read_yaml, save_config, _deep_merge
from .paths import get_user_config_path, get_project_config_path, get_defaults_path

logger = get_logger("config")


class ExecutionSettings(BaseModel):
    """Executor concurrency and timeout settings."""
    parallelism: int = Field(10, ge=1, description="Maximum concurrent operations within a wave")
    resource_timeout_seconds: float = Field(1800, gt=0, description="Per-resource operation timeout")


class RetrySettings(BaseModel):
    """Retry policy for transient provider errors."""
    max_attempts: int = Field(4, ge=1, description="Total attempts including the first call")
    backoff_multiplier: float = Field(1.0, ge=0, description="Exponential backoff multiplier (seconds)")
    backoff_max_seconds: float = Field(30.0, ge=0, description="Upper bound on a single backoff wait")


class StateSettings(BaseModel):
    """Where the state document lives, relative to the workspace root."""
    path: str = Field(".tierform/state.json", description="State document path")


class LockSettings(BaseModel):
    """Deployment lock settings."""
    stale_after_seconds: float = Field(900, gt=0, description="Age after which a held lock is reported as stale")


class ProviderSettings(BaseModel):
    """Provider selection."""
    kind: str = Field("local", pattern="^(local|memory|http)$", description="Provider implementation")
    path: Optional[str] = Field(".tierform/local-cloud.json", description="Backing file for the local provider")
    base_url: Optional[str] = Field(None, description="Base URL for the http provider")
    timeout_seconds: float = Field(30, gt=0, description="HTTP request timeout")


class OrchestratorConfig(BaseModel):
    """Validated orchestrator configuration."""
    declaration_file: str = Field("deployment.yaml", description="Declaration document, relative to the workspace root")
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    state: StateSettings = Field(default_factory=StateSettings)
    lock: LockSettings = Field(default_factory=LockSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    variables: Dict[str, Any] = Field(default_factory=dict, description="Variable values for the root document")


def load_orchestrator_config(
    root: Optional[Path] = None,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    include_user: bool = True,
) -> OrchestratorConfig:
    """
    Load orchestrator configuration.

    Args:
        root: Workspace root (default: current directory)
        config_path: Explicit config YAML merged on top of the two-tier config
        overrides: Dictionary merged last (used by CLI flags)
        include_user: Whether to merge the user-level config

    Returns:
        OrchestratorConfig

    Raises:
        ConfigError: If config cannot be loaded or is invalid
    """
    config = load_config(root, include_user=include_user)

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        _deep_merge(config, read_yaml(path))

    parallelism = os.getenv("TIERFORM_PARALLELISM")
    if parallelism:
        try:
            config.setdefault("execution", {})["parallelism"] = int(parallelism)
        except ValueError:
            raise ConfigError(f"TIERFORM_PARALLELISM must be an integer, got '{parallelism}'")

    if overrides:
        _deep_merge(config, overrides)

    try:
        validated = OrchestratorConfig(**config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")

    logger.debug(f"Loaded configuration: {validated.model_dump()}")
    return validated


__all__ = [
    "OrchestratorConfig",
    "ExecutionSettings",
    "RetrySettings",
    "StateSettings",
    "LockSettings",
    "ProviderSettings",
    "load_orchestrator_config",
    "load_config",
    "save_config",
    "get_user_config_path",
    "get_project_config_path",
    "get_defaults_path",
]
