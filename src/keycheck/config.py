"""Configuration loading for keycheck.

Reads `.keycheck.yaml` from the project root unless told otherwise.
Without a config file the defaults below apply.

Config search order:
  1. explicit `path` argument (the CLI's --config option)
  2. KEYCHECK_CONFIG environment variable
  3. `.keycheck.yaml` in the project root

Environment variable overrides:
  KEYCHECK_CACHE_DIR - overrides cache.directory
  KEYCHECK_WORKERS   - overrides scan.workers
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from keycheck.errors import ConfigError

logger = logging.getLogger(__name__)

SUPPORTED_CONFIG_VERSIONS = frozenset({1})
DEFAULT_CONFIG_FILE = ".keycheck.yaml"
DEFAULT_BASELINE_PATH = ".keycheck/baseline.json"
DEFAULT_CACHE_DIR = ".keycheck/cache"

DEFAULT_ELEMENT_SUFFIXES = [
    "Widget",
    "Button",
    "Field",
    "View",
    "Screen",
    "Page",
    "Dialog",
    "Card",
    "List",
    "Grid",
    "Container",
    "Box",
    "Text",
    "Image",
    "Icon",
    "Tile",
]

DEFAULT_ELEMENT_NAMES = [
    "Column",
    "Row",
    "Stack",
    "Scaffold",
    "AppBar",
    "Center",
    "Padding",
    "Expanded",
    "Flexible",
    "ListView",
    "GridView",
    "GestureDetector",
    "InkWell",
    "Checkbox",
    "Switch",
    "Radio",
    "Slider",
    "Semantics",
    "MaterialApp",
    "CupertinoApp",
]


class CustomDetectorConfig(BaseModel):
    name: str
    pattern: str
    extraction: str = "group1"
    priority: int = 5
    tags: list[str] = Field(default_factory=list)


class ScanConfig(BaseModel):
    packages: Literal["workspace", "resolve"] = "workspace"
    include_tests: bool = False
    include_generated: bool = False
    include_patterns: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(
        default_factory=lambda: ["**/*.g.dart", "**/*.freezed.dart"]
    )
    custom_detectors: list[CustomDetectorConfig] = Field(default_factory=list)
    detector_presets: list[str] = Field(default_factory=list)
    element_suffixes: list[str] = Field(default_factory=lambda: list(DEFAULT_ELEMENT_SUFFIXES))
    element_names: list[str] = Field(default_factory=lambda: list(DEFAULT_ELEMENT_NAMES))
    ui_heavy_threshold: int = Field(default=5, ge=0)
    tolerate_syntax_errors: bool = False
    workers: int | None = Field(default=None, ge=1)


class PolicyConfig(BaseModel):
    fail_on_lost: bool = True
    fail_on_rename: bool = False
    fail_on_extra: bool = False
    fail_on_package_missing: bool = False
    fail_on_collision: bool = False
    protected_tags: list[str] = Field(default_factory=lambda: ["critical", "aqa"])
    max_drift: float = Field(default=10.0, ge=0, le=100)
    rename_threshold: float = Field(default=0.6, gt=0, le=1)


class AutoTagRule(BaseModel):
    """Tags added by `baseline create` to every key whose id matches `pattern` (re.search)."""

    pattern: str
    tags: list[str] = Field(min_length=1)


class CacheConfig(BaseModel):
    enabled: bool = True
    directory: str = DEFAULT_CACHE_DIR
    ttl_hours: float = Field(default=24.0, gt=0)


class KeycheckConfig(BaseModel):
    version: int = 1
    baseline: str = DEFAULT_BASELINE_PATH
    scan: ScanConfig = Field(default_factory=ScanConfig)
    policies: PolicyConfig = Field(default_factory=PolicyConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    auto_tags: list[AutoTagRule] = Field(default_factory=list)


def _find_config_file(path: str | Path | None, project_root: Path) -> tuple[Path | None, bool]:
    """Return (candidate, explicit). Explicit candidates must exist."""
    if path is not None:
        return Path(path), True
    env_path = os.environ.get("KEYCHECK_CONFIG")
    if env_path:
        return Path(env_path), True
    default = project_root / DEFAULT_CONFIG_FILE
    if default.is_file():
        return default, False
    return None, False


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    cache_dir = os.environ.get("KEYCHECK_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["directory"] = cache_dir
    workers = os.environ.get("KEYCHECK_WORKERS")
    if workers:
        try:
            data.setdefault("scan", {})["workers"] = int(workers)
        except ValueError as exc:
            raise ConfigError(f"KEYCHECK_WORKERS must be an integer, got {workers!r}") from exc
    return data


def load_config(path: str | Path | None = None, project_root: str | Path = ".") -> KeycheckConfig:
    root = Path(project_root)
    candidate, explicit = _find_config_file(path, root)

    data: dict[str, Any] = {}
    if candidate is not None:
        if explicit and not candidate.is_file():
            raise ConfigError(f"Config file not found: {candidate}")
        logger.debug("Loading config from %s", candidate)
        data = _read_yaml(candidate)

    data = _apply_env_overrides(data)

    try:
        config = KeycheckConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    if config.version not in SUPPORTED_CONFIG_VERSIONS:
        raise ConfigError(
            f"Unsupported config version {config.version}; "
            f"supported: {sorted(SUPPORTED_CONFIG_VERSIONS)}"
        )
    return config
