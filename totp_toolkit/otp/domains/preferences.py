"""Per-user preferences for totp-toolkit.

Preferences live in ~/.config/totp-toolkit/preferences.json and hold the
defaults a user picks once instead of passing on every command:

    config_path   config file to use when TOTP_TOOLKIT_CONFIG is unset
    digits        token width for new secrets (6, 8 or 10)
    export_type   otpauth or otpauth-migration
    chunk_size    maximum migration URL length, overrides export.chunk_size

Values are validated and normalised on write, so readers get the stored
type back (``digits`` and ``chunk_size`` as int).
"""
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict

from .models import ALLOWED_DIGITS
from .otpauth import MIGRATION_SCHEME, OTPAUTH_SCHEME

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "totp-toolkit"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


class PreferenceError(ValueError):
    """Unknown preference key or a value it cannot hold."""


def _parse_path(value: Any) -> str:
    return str(Path(str(value)).expanduser())


def _parse_digits(value: Any) -> int:
    try:
        digits = int(value)
    except (TypeError, ValueError):
        raise PreferenceError(f"digits must be a number, got {value!r}")
    if digits not in ALLOWED_DIGITS:
        raise PreferenceError(f"digits must be one of {', '.join(str(d) for d in ALLOWED_DIGITS)}, got {digits}")
    return digits


def _parse_export_type(value: Any) -> str:
    if value not in (OTPAUTH_SCHEME, MIGRATION_SCHEME):
        raise PreferenceError(f"export_type must be {OTPAUTH_SCHEME} or {MIGRATION_SCHEME}, got {value!r}")
    return value


def _parse_chunk_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        raise PreferenceError(f"chunk_size must be a number, got {value!r}")
    if size <= 0:
        raise PreferenceError(f"chunk_size must be positive, got {size}")
    return size


PREFERENCE_PARSERS: Dict[str, Callable[[Any], Any]] = {
    "config_path": _parse_path,
    "digits": _parse_digits,
    "export_type": _parse_export_type,
    "chunk_size": _parse_chunk_size,
}


def _check_key(key: str) -> None:
    if key not in PREFERENCE_PARSERS:
        raise PreferenceError(f"Unknown preference '{key}'; known: {', '.join(PREFERENCE_PARSERS)}")


def _load_preferences() -> Dict[str, Any]:
    """
    Load preferences from JSON file.

    Returns:
        Dictionary of preferences, or empty dict if the file is missing or unreadable
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse preferences file {PREFERENCES_FILE}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Preferences file {PREFERENCES_FILE} must hold a JSON object")
        return {}
    return data


def _save_preferences(preferences: Dict[str, Any]) -> None:
    try:
        PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
        with open(PREFERENCES_FILE, 'w') as f:
            json.dump(preferences, f, indent=2, sort_keys=True)
    except OSError as e:
        logger.error(f"Failed to save preferences to {PREFERENCES_FILE}: {e}")
        raise


def get_preference(key: str, default: Any = None) -> Any:
    """
    Read one preference.

    A stored value that no longer validates (hand-edited file, older
    version) is logged and treated as unset.
    """
    _check_key(key)
    value = _load_preferences().get(key)
    if value is None:
        return default
    try:
        return PREFERENCE_PARSERS[key](value)
    except PreferenceError as e:
        logger.warning(f"Ignoring stored preference '{key}': {e}")
        return default


def get_all_preferences() -> Dict[str, Any]:
    """Every known preference that is set and valid."""
    preferences = {}
    for key in PREFERENCE_PARSERS:
        value = get_preference(key)
        if value is not None:
            preferences[key] = value
    return preferences


def set_preference(key: str, value: Any) -> Any:
    """
    Validate and store a preference.

    Returns:
        The normalised value that was written

    Raises:
        PreferenceError: If the key is unknown or the value is invalid
    """
    _check_key(key)
    parsed = PREFERENCE_PARSERS[key](value)
    preferences = _load_preferences()
    preferences[key] = parsed
    _save_preferences(preferences)
    logger.info(f"Preference '{key}' set to: {parsed}")
    return parsed


def clear_preference(key: str) -> None:
    """Remove a preference; unset keys are ignored."""
    _check_key(key)
    preferences = _load_preferences()
    if key in preferences:
        del preferences[key]
        _save_preferences(preferences)
        logger.info(f"Preference '{key}' cleared")
    else:
        logger.debug(f"Preference '{key}' not found, nothing to clear")
