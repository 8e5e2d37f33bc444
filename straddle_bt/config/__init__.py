"""
Configuration system: schemas and loaders
"""

from .schemas import (
    DataConfig,
    InstrumentConfig,
    RulesConfig,
    EngineConfig,
    ReportingConfig,
    RunConfig,
)
from .loader import load_config, apply_env_overrides, apply_cli_overrides

__all__ = [
    "DataConfig",
    "InstrumentConfig",
    "RulesConfig",
    "EngineConfig",
    "ReportingConfig",
    "RunConfig",
    "load_config",
    "apply_env_overrides",
    "apply_cli_overrides",
]
