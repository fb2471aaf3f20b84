"""Centralized project configuration and path resolution."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import os
from pathlib import Path
import tomllib
from typing import Any

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import DEFAULT_DIP_SENSITIVITY, DEFAULT_PEAK_SENSITIVITY_FACTOR


DEFAULT_STATS_FILE = "data/retention_stats.csv"
DEFAULT_OUTPUT_DIR = "outputs"
DEFAULT_CONFIG_FILE = "config/retention_insights.yaml"
DEFAULT_LOG_LEVEL = "INFO"
ENV_PREFIX = "RETENTION_INSIGHTS_"


class PathSettings(BaseModel):
    """File and directory locations for this project."""

    stats_file: str = DEFAULT_STATS_FILE
    output_dir: str = DEFAULT_OUTPUT_DIR

    @field_validator("stats_file", "output_dir")
    @classmethod
    def _non_empty_path(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("path values must not be empty")
        return cleaned


class AnalysisSettings(BaseModel):
    """Default sensitivities for event detection."""

    dip_sensitivity: float = Field(default=DEFAULT_DIP_SENSITIVITY, gt=0)
    peak_sensitivity_factor: float = Field(default=DEFAULT_PEAK_SENSITIVITY_FACTOR, ge=0)


class RuntimeSettings(BaseModel):
    """Runtime behavior controls for scripts and the CLI."""

    create_output_dirs: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value!r}")
        return level


class RetentionInsightsConfig(BaseModel):
    """Typed configuration model for project behavior."""

    model_config = ConfigDict(extra="ignore")
    paths: PathSettings = Field(default_factory=PathSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


@dataclass(frozen=True)
class ProjectPaths:
    """Resolved canonical project paths."""

    project_root: Path
    stats_file: Path
    output_dir: Path


def find_project_root(start: Path | None = None) -> Path:
    """Find the project root by locating `pyproject.toml`."""
    env_root = os.getenv(f"{ENV_PREFIX}PROJECT_ROOT")
    if env_root:
        return _resolve_path(Path(env_root), Path.cwd())

    cursor = (start or Path.cwd()).resolve()
    for candidate in (cursor, *cursor.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate

    module_cursor = Path(__file__).resolve()
    for candidate in (module_cursor, *module_cursor.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate

    return cursor


@lru_cache(maxsize=1)
def default_project_config() -> RetentionInsightsConfig:
    """Load config with OmegaConf merge + Pydantic validation."""
    project_root = find_project_root()
    merged = _load_merged_config(project_root)
    try:
        return RetentionInsightsConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid retention_insights config: {exc}") from exc


@lru_cache(maxsize=1)
def default_project_paths() -> ProjectPaths:
    """Resolve canonical paths from validated project config."""
    project_root = find_project_root()
    config = default_project_config()
    output_dir = _resolve_path(Path(config.paths.output_dir), project_root)

    if config.runtime.create_output_dirs:
        output_dir.mkdir(parents=True, exist_ok=True)

    return ProjectPaths(
        project_root=project_root,
        stats_file=_resolve_path(Path(config.paths.stats_file), project_root),
        output_dir=output_dir,
    )


def resolve_stats_file(input_path: str | Path | None = None) -> Path:
    """Resolve an explicit or default retention-export path."""
    paths = default_project_paths()
    if input_path is None:
        return paths.stats_file
    return _resolve_path(Path(input_path), paths.project_root)


def resolve_output_dir(output_dir: str | Path | None = None) -> Path:
    """Resolve an explicit or default output directory path."""
    paths = default_project_paths()
    if output_dir is None:
        return paths.output_dir
    return _resolve_path(Path(output_dir), paths.project_root)


def clear_project_config_cache() -> None:
    """Clear cached config; useful for tests or env-var changes."""
    default_project_config.cache_clear()
    default_project_paths.cache_clear()


def _load_merged_config(project_root: Path) -> dict[str, Any]:
    base_cfg = {
        "paths": {
            "stats_file": DEFAULT_STATS_FILE,
            "output_dir": DEFAULT_OUTPUT_DIR,
        },
        "analysis": {
            "dip_sensitivity": DEFAULT_DIP_SENSITIVITY,
            "peak_sensitivity_factor": DEFAULT_PEAK_SENSITIVITY_FACTOR,
        },
        "runtime": {
            "create_output_dirs": False,
            "log_level": DEFAULT_LOG_LEVEL,
        },
    }

    merged = OmegaConf.merge(
        base_cfg,
        _load_pyproject_config(project_root),
        _load_file_config(project_root),
        _load_env_overrides(),
    )
    raw = OmegaConf.to_container(merged, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_file_config(project_root: Path) -> dict[str, Any]:
    env_path = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
    if env_path:
        cfg_path = _resolve_path(Path(env_path), project_root)
        if not cfg_path.exists():
            raise FileNotFoundError(
                f"{ENV_PREFIX}CONFIG_FILE points to missing file: {cfg_path}"
            )
    else:
        cfg_path = project_root / DEFAULT_CONFIG_FILE
        if not cfg_path.exists():
            return {}

    loaded = OmegaConf.load(cfg_path)
    raw = OmegaConf.to_container(loaded, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_env_overrides() -> dict[str, Any]:
    paths: dict[str, Any] = {}
    if env_stats := os.getenv(f"{ENV_PREFIX}STATS_FILE"):
        paths["stats_file"] = env_stats
    if env_output := os.getenv(f"{ENV_PREFIX}OUTPUT_DIR"):
        paths["output_dir"] = env_output

    analysis: dict[str, Any] = {}
    if env_dip := os.getenv(f"{ENV_PREFIX}DIP_SENSITIVITY"):
        analysis["dip_sensitivity"] = _parse_env_float(env_dip, "DIP_SENSITIVITY")
    if env_peak := os.getenv(f"{ENV_PREFIX}PEAK_SENSITIVITY_FACTOR"):
        analysis["peak_sensitivity_factor"] = _parse_env_float(env_peak, "PEAK_SENSITIVITY_FACTOR")

    runtime: dict[str, Any] = {}
    if env_create_output := os.getenv(f"{ENV_PREFIX}CREATE_OUTPUT_DIRS"):
        runtime["create_output_dirs"] = _parse_env_bool(env_create_output)
    if env_log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
        runtime["log_level"] = env_log_level

    overrides: dict[str, Any] = {}
    if paths:
        overrides["paths"] = paths
    if analysis:
        overrides["analysis"] = analysis
    if runtime:
        overrides["runtime"] = runtime
    return overrides


def _resolve_path(path: Path, project_root: Path) -> Path:
    if path.is_absolute():
        return path.expanduser().resolve()
    return (project_root / path).resolve()


def _parse_env_float(value: str, name: str) -> float:
    try:
        return float(value.strip())
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from exc


def _parse_env_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(
        f"{ENV_PREFIX}CREATE_OUTPUT_DIRS must be one of: "
        "1,true,yes,on,0,false,no,off"
    )


def _load_pyproject_config(project_root: Path) -> dict[str, Any]:
    pyproject_path = project_root / "pyproject.toml"
    if not pyproject_path.exists():
        return {}

    with pyproject_path.open("rb") as handle:
        pyproject = tomllib.load(handle)

    tool_cfg = pyproject.get("tool", {}).get("retention_insights", {})
    if not isinstance(tool_cfg, dict):
        return {}
    return {
        key: value
        for key, value in tool_cfg.items()
        if key in {"paths", "analysis", "runtime"} and isinstance(value, dict)
    }
