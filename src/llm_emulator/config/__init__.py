"""
LLM Emulator Configuration Module

Loading, defaults and overrides for emulator configuration, plus helpers
for Python-module configs.
"""

from .emulator_config import (
    ConfigError,
    ContractsConfig,
    DefaultsConfig,
    EmulatorConfig,
    LimitsConfig,
    ServerConfig,
    VcrConfig,
    apply_env_overrides,
    load_config,
)
from .dsl import case_when, define, http_when, scenario

__all__ = [
    'ConfigError',
    'ContractsConfig',
    'DefaultsConfig',
    'EmulatorConfig',
    'LimitsConfig',
    'ServerConfig',
    'VcrConfig',
    'apply_env_overrides',
    'load_config',
    'case_when',
    'define',
    'http_when',
    'scenario',
]
