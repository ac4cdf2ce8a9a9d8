"""Configuration file loader with validation"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import ValidationError
from .errors import ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/blitz.yaml"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load YAML configuration file with validation.

    Args:
        config_path: Path to configuration file

    Returns:
        Dictionary with configuration

    Raises:
        ConfigurationError: If file doesn't exist or invalid YAML
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    # Validate required keys
    required_keys = ['version', 'windows', 'classification', 'cache', 'ai']
    missing_keys = [key for key in required_keys if key not in config]

    if missing_keys:
        raise ConfigurationError(f"Missing required configuration keys: {missing_keys}")

    return config


def save_config(config_path: str, config: Dict[str, Any]) -> None:
    """
    Save configuration to YAML file

    Args:
        config_path: Path to configuration file
        config: Configuration dictionary

    Raises:
        ConfigurationError: If unable to write file
    """
    try:
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error saving configuration: {e}")


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay deployment environment variables on a loaded configuration

    Args:
        config: Configuration dictionary (not modified)

    Returns:
        New configuration dictionary
    """
    result = {key: dict(value) if isinstance(value, dict) else value for key, value in config.items()}

    if os.getenv("CACHE_BACKEND"):
        result.setdefault('cache', {})['backend'] = os.getenv("CACHE_BACKEND")
    if os.getenv("CATEGORIZATION_TTL_DAYS"):
        result.setdefault('cache', {})['ttl_days'] = os.getenv("CATEGORIZATION_TTL_DAYS")
    if os.getenv("AI_CATEGORIZATION_ENABLED"):
        result.setdefault('ai', {})['enabled'] = os.getenv("AI_CATEGORIZATION_ENABLED").lower() == "true"
    if os.getenv("DEFAULT_LLM_MODEL"):
        result.setdefault('ai', {})['model'] = os.getenv("DEFAULT_LLM_MODEL")

    return result


def load_blitz_config(config_path: Optional[str] = None):
    """
    Load the typed blitz configuration for one run.

    Falls back to built-in defaults when no path is given and the default
    file is absent.

    Args:
        config_path: Explicit configuration file path

    Returns:
        BlitzConfig instance

    Raises:
        ConfigurationError: If the file is invalid or values are out of range
    """
    from sales_blitz.models.blitz_config import BlitzConfig

    path = config_path or os.getenv("BLITZ_CONFIG_PATH", DEFAULT_CONFIG_PATH)

    if config_path is None and not Path(path).exists():
        logger.warning("No configuration file found, using defaults", config_path=path)
        raw: Dict[str, Any] = {}
    else:
        raw = load_config(path)

    try:
        return BlitzConfig.from_dict(apply_env_overrides(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid blitz configuration: {e}")
