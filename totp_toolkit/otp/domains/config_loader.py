"""Configuration loader for totp-toolkit."""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .models import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FALLBACK_SCHEMAS,
    DEFAULT_GENERIC_PORT,
    DEFAULT_SCHEMA,
    StoreConfig,
)
from .preferences import get_preference

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TOTP_TOOLKIT_CONFIG"
SOURCE_TYPES = ("secrets-service", "authinfo")


def default_config_path() -> Path:
    return Path.home() / ".config" / "totp-toolkit" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path.

    Priority order:
    1. TOTP_TOOLKIT_CONFIG environment variable
    2. User preference (stored in ~/.config/totp-toolkit/preferences.json)
    3. Default location: ~/.config/totp-toolkit/config.yml

    Returns:
        Absolute path to config file

    Raises:
        FileNotFoundError: If config file doesn't exist in any location
    """
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        config_path = Path(env_path).expanduser()
        if config_path.exists():
            logger.info(f"Using config from {CONFIG_ENV_VAR}: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from {CONFIG_ENV_VAR} doesn't exist: {config_path}")

    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   totp-toolkit config set-path /path/to/your/config.yml\n\n"
        f"3. Export {CONFIG_ENV_VAR}=/path/to/your/config.yml\n"
    )


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def _validate_source(index: int, source: Any, config_path: str) -> None:
    if not isinstance(source, dict) or 'type' not in source:
        raise ConfigError(
            f"Source #{index} in {config_path} must be a mapping with a 'type' key\n"
            f"Required format:\n"
            f"sources:\n"
            f"  - type: secrets-service\n"
            f"  - type: authinfo\n"
            f"    path: ~/.authinfo.enc"
        )

    if source['type'] not in SOURCE_TYPES:
        raise ConfigError(
            f"Unsupported source type: {source['type']}\n"
            f"Supported types: {', '.join(SOURCE_TYPES)}"
        )

    if source['type'] == 'authinfo' and not source.get('path'):
        raise ConfigError(f"Source #{index} (authinfo) is missing 'path' in config at {config_path}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Returns:
        Dict containing configuration with keys:
        - sources: list of storage sources, in search order
        - secrets_service, generic, export: optional tuning sections

    Raises:
        ConfigError: If config file is invalid
        FileNotFoundError: If no config file can be located
    """
    # Resolved on every call so preference changes apply without a restart
    if config_path is None:
        config_path = _get_config_path()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    sources = config.get('sources')
    if not sources or not isinstance(sources, list):
        raise ConfigError(
            f"Missing 'sources' section in config at {config_path}\n"
            f"Required format:\n"
            f"sources:\n"
            f"  - type: secrets-service\n"
            f"    collection: default"
        )

    for index, source in enumerate(sources):
        _validate_source(index, source, config_path)

    chunk_size = (config.get('export') or {}).get('chunk_size', DEFAULT_CHUNK_SIZE)
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ConfigError(f"'export.chunk_size' must be a positive integer, got {chunk_size!r}")

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Configured sources: {[s['type'] for s in sources]}")

    return config


def build_store_config(config: Dict[str, Any]) -> StoreConfig:
    """Turn a validated config dict into StoreConfig, filling in defaults."""
    service = config.get('secrets_service') or {}
    generic = config.get('generic') or {}
    export = config.get('export') or {}

    return StoreConfig(
        sources=list(config.get('sources', [])),
        schema=service.get('schema', DEFAULT_SCHEMA),
        fallback_schemas=list(service.get('fallback_schemas', DEFAULT_FALLBACK_SCHEMAS)),
        dedup=bool(service.get('dedup', True)),
        generic_port=str(generic.get('port', DEFAULT_GENERIC_PORT)),
        chunk_size=export.get('chunk_size', DEFAULT_CHUNK_SIZE),
    )
