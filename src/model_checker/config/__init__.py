"""Configuration management: check options, profiles, and TOML loading.

Usage:
    >>> from model_checker.config import load_config, ModelCheckOptions
"""

from model_checker.config.loader import load_config
from model_checker.config.models import (
    CheckerConfig,
    CheckSettings,
    DatabaseProfile,
    ModelCheckOptions,
)

__all__ = [
    "load_config",
    "CheckerConfig",
    "CheckSettings",
    "DatabaseProfile",
    "ModelCheckOptions",
]
