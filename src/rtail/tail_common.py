"""
tail_common.py: Shared library for the rtail toolchain.

This module consolidates core, reusable functions and classes for:
- Configuration management (settings.json profiles, defaults, validation).
- Error taxonomy shared by extraction and follow mode.
- Opening target files with consistent error reporting.
- Logging setup.
"""

import codecs
import json
import logging
import os
import stat
import sys
from pathlib import Path

# =============================================================================
# ERRORS
# =============================================================================

class TailError(Exception):
    """Base class for every error raised by rtail."""


class TailFileNotFoundError(TailError, FileNotFoundError):
    """The target path does not exist."""


class TailPermissionError(TailError, PermissionError):
    """The target path exists but cannot be opened for reading."""


class TailIOError(TailError, OSError):
    """A read, seek or stat failed while an operation was in progress."""


class RotationRetriesExhausted(TailIOError):
    """The followed path stayed unreadable for more polls than allowed."""


class RotationRecoveryPending(TailError):
    """The followed path is temporarily missing, typically mid-rotation."""


class LineDecodeError(TailError, ValueError):
    """
    A completed line is not valid in the declared encoding.

    Only raised when MALFORMED_LINE_POLICY is FAIL_FAST.
    """

    def __init__(self, raw: bytes, encoding: str, reason: str = ""):
        self.raw = raw
        self.encoding = encoding
        self.reason = reason
        preview = raw[:40]
        super().__init__(f"Cannot decode line as {encoding}: {reason} (bytes {preview!r})")


# =============================================================================
# CONFIGURATION MANAGEMENT
# =============================================================================

TERMINATOR_LF = "LF"
TERMINATOR_LF_OPTIONAL_CR = "LF_OPTIONAL_CR"

MALFORMED_SUBSTITUTE = "SUBSTITUTE"
MALFORMED_FAIL_FAST = "FAIL_FAST"

ROTATE_FROM_START = "START"
ROTATE_FROM_END = "END"

DEFAULT_CONFIG = {
    'WINDOW_SIZE_BYTES': 8192,
    'POLL_INTERVAL_MS': 1000,
    'LINE_TERMINATOR_POLICY': TERMINATOR_LF_OPTIONAL_CR,
    'MALFORMED_LINE_POLICY': MALFORMED_SUBSTITUTE,
    'ENCODING': 'utf-8',
    'ROTATE_FROM': ROTATE_FROM_START,
    'MAX_ROTATION_RETRIES': None,
    'LOG_LEVEL': 'WARNING',
    'OUTFILE': None,
}

_CHOICES = {
    'LINE_TERMINATOR_POLICY': (TERMINATOR_LF, TERMINATOR_LF_OPTIONAL_CR),
    'MALFORMED_LINE_POLICY': (MALFORMED_SUBSTITUTE, MALFORMED_FAIL_FAST),
    'ROTATE_FROM': (ROTATE_FROM_START, ROTATE_FROM_END),
}


def find_settings_file() -> Path:
    """
    Locate settings.json.

    Returns:
        $RTAIL_SETTINGS when set, otherwise ~/.rtail/settings.json
    """
    override = os.environ.get('RTAIL_SETTINGS')
    if override:
        return Path(override)
    return Path(os.path.expanduser('~')) / '.rtail' / 'settings.json'


def load_settings() -> dict:
    """
    Load settings.json and return as dict.

    Returns:
        Dictionary containing settings data with 'Profiles' section

    Raises:
        json.JSONDecodeError: If settings.json is invalid JSON
    """
    settings_file = find_settings_file()

    if not settings_file.exists():
        logging.debug(f"settings.json not found at {settings_file}. Using built-in defaults.")
        return {"Profiles": {}}

    try:
        with open(settings_file, 'r', encoding='utf-8') as f:
            settings_data = json.load(f)
    except json.JSONDecodeError as e:
        logging.error(f"Invalid JSON in {settings_file}: {e}")
        raise

    if "Profiles" not in settings_data:
        logging.warning("settings.json missing 'Profiles' section. Adding empty Profiles.")
        settings_data["Profiles"] = {}

    return settings_data


def list_profiles() -> list:
    """Return list of profile names from settings.json."""
    return list(load_settings().get("Profiles", {}).keys())


def load_profile(profile_name: str) -> dict:
    """
    Load a specific profile from settings.json by name (case-insensitive).

    Raises:
        KeyError: If profile not found in settings.json
        ValueError: If the profile contains keys rtail does not recognize
    """
    profiles = load_settings().get("Profiles", {})

    found = None
    for name, data in profiles.items():
        if name.upper() == profile_name.upper():
            found = (name, data)
            break

    if found is None:
        raise KeyError(f"Profile '{profile_name}' not found in settings.json")

    name, data = found
    unknown = [key for key in data if key.upper() not in DEFAULT_CONFIG]
    if unknown:
        raise ValueError(f"Profile '{name}' has unknown keys: {', '.join(sorted(unknown))}")

    return {key.upper(): value for key, value in data.items()}


def validate_config(config: dict) -> dict:
    """
    Normalize and validate a configuration dictionary in place.

    Raises:
        ValueError: naming the offending key
    """
    for key, choices in _CHOICES.items():
        value = str(config[key]).upper()
        if value not in choices:
            raise ValueError(f"Invalid {key}: {config[key]!r} (expected one of {', '.join(choices)})")
        config[key] = value

    window = config['WINDOW_SIZE_BYTES']
    if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
        raise ValueError(f"Invalid WINDOW_SIZE_BYTES: {window!r} (must be a positive integer)")

    interval = config['POLL_INTERVAL_MS']
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
        raise ValueError(f"Invalid POLL_INTERVAL_MS: {interval!r} (must be >= 0)")

    retries = config['MAX_ROTATION_RETRIES']
    if retries is not None and (not isinstance(retries, int) or retries < 0):
        raise ValueError(f"Invalid MAX_ROTATION_RETRIES: {retries!r} (must be >= 0 or null)")

    try:
        codec = codecs.lookup(config['ENCODING'])
    except (LookupError, TypeError):
        raise ValueError(f"Invalid ENCODING: {config['ENCODING']!r} (unknown codec)")

    # Lines are split on the raw LF byte, so the codec must encode it as b"\n".
    try:
        lf_ok = codec.encode("\n")[0] == b"\n"
    except (UnicodeError, TypeError):
        lf_ok = False
    if not lf_ok:
        raise ValueError(f"Invalid ENCODING: {config['ENCODING']!r} (newline is not the single byte 0x0A)")

    level = str(config['LOG_LEVEL']).upper()
    if not isinstance(getattr(logging, level, None), int):
        raise ValueError(f"Invalid LOG_LEVEL: {config['LOG_LEVEL']!r}")
    config['LOG_LEVEL'] = level

    return config


def get_config(profile_name: str = None, overrides: dict = None) -> dict:
    """
    Build the effective configuration.

    Precedence (lowest to highest): DEFAULT_CONFIG, the named profile from
    settings.json, then explicit overrides. Overrides whose value is None are
    treated as "not given".
    """
    config = dict(DEFAULT_CONFIG)

    if profile_name:
        config.update(load_profile(profile_name))
        logging.debug(f"Loaded profile '{profile_name}'.")

    for key, value in (overrides or {}).items():
        if value is not None:
            config[key.upper()] = value

    return validate_config(config)


# =============================================================================
# FILE ACCESS
# =============================================================================

def open_for_tail(path: Path):
    """
    Open a file for binary random-access reading.

    Raises:
        TailFileNotFoundError, TailPermissionError, TailIOError
    """
    try:
        fh = open(path, 'rb')
    except FileNotFoundError as e:
        raise TailFileNotFoundError(e.errno, "No such file", str(path)) from e
    except PermissionError as e:
        raise TailPermissionError(e.errno, "Permission denied", str(path)) from e
    except IsADirectoryError as e:
        raise TailIOError(e.errno, "Is a directory", str(path)) from e
    except OSError as e:
        raise TailIOError(e.errno, e.strerror or str(e), str(path)) from e

    try:
        mode = os.fstat(fh.fileno()).st_mode
    except OSError as e:
        fh.close()
        raise TailIOError(e.errno, e.strerror or str(e), str(path)) from e

    if not stat.S_ISREG(mode):
        fh.close()
        raise TailIOError(None, "Not a regular file", str(path))

    return fh


# =============================================================================
# LOGGING
# =============================================================================

def setup_logging(config):
    """Configures Python's logging module."""
    log_level_str = config.get('LOG_LEVEL', 'WARNING').upper()
    log_file_path = config.get('OUTFILE', None)

    numeric_level = getattr(logging, log_level_str, None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {log_level_str}')

    log_format = '%(asctime)s - %(levelname)s - %(message)s'

    # stdout carries tailed content
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file_path:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path))

    logging.basicConfig(level=numeric_level, format=log_format, handlers=handlers, force=True)
    logging.debug(f"Logging setup with level {log_level_str}.")
