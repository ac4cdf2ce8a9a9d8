"""Utility modules"""

from .config_loader import load_config, save_config, load_blitz_config
from .errors import (
    BlitzSystemError,
    CacheError,
    ConfigurationError,
    DataSourceError,
    LLMError,
    OracleResponseError
)

__all__ = [
    "load_config",
    "save_config",
    "load_blitz_config",
    "BlitzSystemError",
    "CacheError",
    "ConfigurationError",
    "DataSourceError",
    "LLMError",
    "OracleResponseError"
]
