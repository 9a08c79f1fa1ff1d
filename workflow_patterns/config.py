"""
Configuration loading and validation for workflow patterns.

This module handles:
- Loading .workflow/config.yaml from the workspace root (optional)
- Environment variable resolution (${VAR} syntax)
- The WORKFLOW_REGISTRY_URL override for the registry endpoint
- Default values for every section
- Caching of the loaded configuration
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_REGISTRY_URL = "https://registry-api.example"
REGISTRY_URL_ENV_VAR = "WORKFLOW_REGISTRY_URL"


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


@dataclass
class RegistryConfig:
    """Remote pattern registry configuration."""
    base_url: str = DEFAULT_REGISTRY_URL       # Registry API root
    timeout_seconds: float = 30.0              # Per-request timeout
    max_retries: int = 3                       # Attempts for retryable failures


@dataclass
class PatternsConfig:
    """Local pattern store configuration."""
    patterns_dir: str = "patterns"             # Relative to the .workflow directory
    deprecation_threshold_days: int = 365      # Age after which a pattern is stale


@dataclass
class TelemetryConfig:
    """Telemetry queue configuration."""
    batch_size: int = 10                       # Events sent per flush batch
    max_queue_size: int = 100                  # Oldest events dropped past this


@dataclass
class SyncConfig:
    """Push/pull behaviour."""
    pull_page_size: int = 50                   # Patterns requested per pull page


@dataclass
class WorkflowConfig:
    """Root configuration for a workspace."""
    repo_root: str = "."
    workflow_dir: str = ".workflow"

    registry: RegistryConfig = field(default_factory=RegistryConfig)
    patterns: PatternsConfig = field(default_factory=PatternsConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    def __post_init__(self) -> None:
        """Convert paths to absolute paths based on repo_root."""
        self.repo_root = str(Path(self.repo_root).absolute())

    @property
    def workflow_path(self) -> Path:
        """Absolute path to the .workflow directory."""
        return Path(self.repo_root) / self.workflow_dir

    @property
    def patterns_path(self) -> Path:
        """Absolute path to the patterns directory."""
        return self.workflow_path / self.patterns.patterns_dir

    @property
    def contributor_id_path(self) -> Path:
        """Absolute path to the contributor record."""
        return self.workflow_path / ".contributor-id"

    @property
    def telemetry_queue_path(self) -> Path:
        """Absolute path to the telemetry queue file."""
        return self.workflow_path / "telemetry-queue.json"

    @property
    def logs_path(self) -> Path:
        """Absolute path to logs directory."""
        return self.workflow_path / "logs"


# Module-level cache for the loaded configuration
_config_cache: Optional[WorkflowConfig] = None


_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Substitute ${VAR} references in every string of a parsed YAML tree."""
    if isinstance(value, str):
        def lookup(match: re.Match) -> str:
            name = match.group(1)
            if name not in os.environ:
                raise ConfigError(f"Environment variable ${{{name}}} is not set")
            return os.environ[name]

        return _ENV_REF.sub(lookup, value)

    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]

    return value


def _positive(section: str, key: str, value: Any) -> Any:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{section}.{key} must be a positive number, got {value!r}")
    return value


def _parse_registry_config(data: dict[str, Any]) -> RegistryConfig:
    """Parse registry configuration from dict."""
    base_url = os.environ.get(REGISTRY_URL_ENV_VAR) or data.get("base_url", DEFAULT_REGISTRY_URL)
    return RegistryConfig(
        base_url=base_url.rstrip("/"),
        timeout_seconds=float(_positive("registry", "timeout_seconds", data.get("timeout_seconds", 30.0))),
        max_retries=int(_positive("registry", "max_retries", data.get("max_retries", 3))),
    )


def _parse_patterns_config(data: dict[str, Any]) -> PatternsConfig:
    """Parse pattern store configuration from dict."""
    return PatternsConfig(
        patterns_dir=data.get("patterns_dir", "patterns"),
        deprecation_threshold_days=int(
            _positive("patterns", "deprecation_threshold_days", data.get("deprecation_threshold_days", 365))
        ),
    )


def _parse_telemetry_config(data: dict[str, Any]) -> TelemetryConfig:
    """Parse telemetry configuration from dict."""
    return TelemetryConfig(
        batch_size=int(_positive("telemetry", "batch_size", data.get("batch_size", 10))),
        max_queue_size=int(_positive("telemetry", "max_queue_size", data.get("max_queue_size", 100))),
    )


def _parse_sync_config(data: dict[str, Any]) -> SyncConfig:
    """Parse sync configuration from dict."""
    return SyncConfig(
        pull_page_size=int(_positive("sync", "pull_page_size", data.get("pull_page_size", 50))),
    )


def load_config(repo_root: str | Path = ".", config_path: Optional[str | Path] = None) -> WorkflowConfig:
    """
    Load configuration for a workspace.

    The config file is optional. When it is missing every section takes
    its defaults (the registry URL still honours WORKFLOW_REGISTRY_URL).

    Args:
        repo_root: Workspace root that holds the .workflow directory.
        config_path: Optional explicit config file. Defaults to
                     <repo_root>/.workflow/config.yaml.

    Returns:
        WorkflowConfig: Loaded and validated configuration.

    Raises:
        ConfigError: If the config file exists but is invalid.
    """
    root = Path(repo_root)
    path = Path(config_path) if config_path is not None else root / ".workflow" / "config.yaml"

    raw_data: Any = {}
    if path.exists():
        try:
            with open(path, "r") as f:
                raw_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file: {e}")
    elif config_path is not None:
        raise ConfigError(f"Configuration file not found: {config_path}")

    if not isinstance(raw_data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    data = _resolve_env_vars(raw_data)

    return WorkflowConfig(
        repo_root=str(root),
        registry=_parse_registry_config(data.get("registry") or {}),
        patterns=_parse_patterns_config(data.get("patterns") or {}),
        telemetry=_parse_telemetry_config(data.get("telemetry") or {}),
        sync=_parse_sync_config(data.get("sync") or {}),
    )


def get_config(repo_root: str | Path = ".", force_reload: bool = False) -> WorkflowConfig:
    """
    Get the cached configuration, loading it if necessary.

    Args:
        repo_root: Workspace root.
        force_reload: If True, reload configuration even if cached.

    Returns:
        WorkflowConfig: The loaded configuration.
    """
    global _config_cache

    if (
        _config_cache is None
        or force_reload
        or _config_cache.repo_root != str(Path(repo_root).absolute())
    ):
        _config_cache = load_config(repo_root)

    return _config_cache


def clear_config_cache() -> None:
    """Clear the configuration cache. Useful for testing."""
    global _config_cache
    _config_cache = None
