"""
Configuration loader with YAML/JSON support, environment overrides, and CLI overrides.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..errors import ConfigError
from .schemas import RunConfig

ENV_PREFIX = "STBT__"


def load_config(path: str) -> RunConfig:
    """
    Load configuration from YAML or JSON file.

    Args:
        path: Path to config file

    Returns:
        RunConfig validated instance

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file format is unsupported or the document is not a mapping
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    suffix = config_path.suffix.lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if suffix in [".yaml", ".yml"]:
            config_dict = yaml.safe_load(f)
        elif suffix == ".json":
            config_dict = json.load(f)
        else:
            raise ConfigError(f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .json")

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    return RunConfig(**config_dict)


def _parse_value(raw: str) -> Any:
    """JSON first, then true/false/null and numbers, else the raw string"""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        pass

    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    try:
        return float(raw) if "." in raw else int(raw)
    except ValueError:
        return raw


def _set_nested(overrides: Dict[str, Any], keys: List[str], value: Any) -> None:
    current = overrides
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value


def _merge_into(cfg: RunConfig, overrides: Dict[str, Any]) -> RunConfig:
    if not overrides:
        return cfg
    config_dict = _deep_merge(cfg.model_dump(), overrides)
    # Re-validate
    return RunConfig(**config_dict)


def apply_env_overrides(cfg: RunConfig) -> RunConfig:
    """
    Apply environment variable overrides to configuration.

    Environment variables must follow pattern: STBT__{section}__{key}
    Example: STBT__rules__stop_loss_pct=30

    Args:
        cfg: Base RunConfig

    Returns:
        RunConfig with environment overrides applied
    """
    overrides: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.upper().startswith(ENV_PREFIX):
            continue
        # Env vars are often upper-cased; config keys are lower-case
        parts = key[len(ENV_PREFIX):].lower().split("__")
        if len(parts) < 2 or not all(parts):
            continue
        _set_nested(overrides, parts, _parse_value(value))

    return _merge_into(cfg, overrides)


def apply_cli_overrides(cfg: RunConfig, sets: List[str]) -> RunConfig:
    """
    Apply CLI --set key=value overrides to configuration.

    Supports nested keys: rules.combined_target_pct=30 or instrument.lot_sizes.NIFTY=50

    Raises:
        ConfigError: On malformed key=value pairs
    """
    if not sets:
        return cfg

    overrides: Dict[str, Any] = {}

    for set_str in sets:
        if "=" not in set_str:
            raise ConfigError(f"Invalid --set format: {set_str}. Expected 'key=value'")

        key_str, value_str = set_str.split("=", 1)
        key_parts = key_str.strip().split(".")
        if len(key_parts) < 2 or not all(key_parts):
            raise ConfigError(f"Invalid --set key format: {key_str}. Expected 'section.key' or 'section.nested.key'")

        _set_nested(overrides, key_parts, _parse_value(value_str))

    return _merge_into(cfg, overrides)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
