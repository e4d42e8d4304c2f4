"""
User settings for the password manager.

Non-secret preferences are kept in a KEY=value text file. Unknown keys and
invalid values are logged and ignored; a missing file is created with the
defaults. The file is rewritten whenever a setting changes.
"""

import os
import logging
import datetime
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from . import utils
from .errors import ConfigError

logger = logging.getLogger(__name__)


def _parse_text(value: str) -> str:
    return value


def _parse_directory(value: str) -> str:
    if not value:
        raise ConfigError("Save location cannot be empty")
    return os.path.expanduser(value)


def _parse_positive_int(value: str) -> int:
    if not value.isdigit() or int(value) < 1:
        raise ConfigError(f"'{value}' is not a positive number")
    return int(value)


def _parse_non_negative_int(value: str) -> int:
    if not value.isdigit():
        raise ConfigError(f"'{value}' is not a non-negative number")
    return int(value)


def _parse_yes_no(value: str) -> bool:
    lowered = value.lower()
    if lowered not in ("y", "n"):
        raise ConfigError(f"'{value}' is not 'y' or 'n'")
    return lowered == "y"


def _parse_search_mode(value: str) -> str:
    lowered = value.lower()
    if lowered not in config.SEARCH_MODES:
        raise ConfigError(f"'{value}' is not one of: {', '.join(config.SEARCH_MODES)}")
    return lowered


# File key -> (attribute, parser, quote on save)
SETTING_KEYS: Dict[str, Tuple[str, Callable, bool]] = {
    "SAVE_LOCATION": ("save_location", _parse_directory, True),
    "DEFAULT_PASSWORD_LENGTH": ("default_password_length", _parse_positive_int, False),
    "DEFAULT_PASSWORD_UPPER": ("default_password_upper", _parse_yes_no, False),
    "DEFAULT_PASSWORD_NUMBERS": ("default_password_numbers", _parse_yes_no, False),
    "DEFAULT_PASSWORD_SYMBOLS": ("default_password_symbols", _parse_yes_no, False),
    "CLIPBOARD_CLEAR_DELAY": ("clipboard_clear_delay", _parse_non_negative_int, False),
    "DEFAULT_SEARCH_MODE": ("default_search_mode", _parse_search_mode, True),
    "DEFAULT_EMAIL": ("default_email", _parse_text, True),
    "DEFAULT_SERVICE": ("default_service", _parse_text, True),
}


@dataclass
class Settings:
    """Non-secret user preferences."""
    save_location: str = config.DEFAULT_SAVE_LOCATION
    default_password_length: int = config.DEFAULT_PASSWORD_LENGTH
    default_password_upper: bool = True
    default_password_numbers: bool = True
    default_password_symbols: bool = True
    clipboard_clear_delay: int = config.DEFAULT_CLIPBOARD_CLEAR_DELAY
    default_search_mode: str = config.DEFAULT_SEARCH_MODE
    default_email: str = ""
    default_service: str = ""

    @property
    def vault_path(self) -> str:
        """Full path of the vault file in the save location."""
        return os.path.join(self.save_location, config.DEFAULT_VAULT_FILE)

    def update(self, key: str, raw_value: str) -> None:
        """
        Set a value from its textual form.

        Args:
            key: File key, e.g. "DEFAULT_PASSWORD_LENGTH"
            raw_value: Value as typed by the user or read from the file

        Raises:
            ConfigError: Unknown key or invalid value
        """
        if key not in SETTING_KEYS:
            raise ConfigError(f"Unknown configuration key '{key}'")
        attribute, parser, _ = SETTING_KEYS[key]
        setattr(self, attribute, parser(raw_value.strip()))

    def value_text(self, key: str) -> str:
        """Textual form of a setting as written to the file."""
        attribute, _, _ = SETTING_KEYS[key]
        value = getattr(self, attribute)
        if isinstance(value, bool):
            return "y" if value else "n"
        return str(value)


def default_settings_path() -> str:
    """Settings file path, honouring the PASSMAN_CONFIG environment variable."""
    override = os.environ.get(config.CONFIG_PATH_ENV)
    if override:
        return os.path.expanduser(override)
    return os.path.join(config.CONFIG_DIR, config.CONFIG_FILE_NAME)


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def parse_settings(lines: List[str], source: str = "<settings>") -> Settings:
    """Build Settings from file lines, keeping defaults for bad or unknown entries."""
    settings = Settings()
    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' not in line:
            logger.warning(f"Ignoring malformed line {lineno} in {source}: expected KEY=value")
            continue
        key, value = line.split('=', 1)
        key = key.strip()
        value = _strip_quotes(value.strip())
        if key not in SETTING_KEYS:
            logger.warning(f"Unknown configuration key '{key}' in {source}, ignoring it.")
            continue
        try:
            settings.update(key, value)
        except ConfigError as e:
            logger.warning(f"Invalid value for {key} in {source}: {e}. Keeping default.")
    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from path, creating the file with defaults when missing.

    Args:
        path: Settings file; defaults to default_settings_path()

    Returns:
        Loaded settings
    """
    path = path or default_settings_path()
    if not os.path.exists(path):
        logger.info(f"No configuration file at {path}, creating one with defaults.")
        settings = Settings()
        try:
            save_settings(settings, path)
        except OSError as e:
            logger.warning(f"Could not create configuration file {path}: {e}")
        return settings

    try:
        with open(path, 'r', encoding='utf-8') as f:
            lines = f.readlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read configuration file {path}: {e}. Using defaults.")
        return Settings()
    logger.debug(f"Loaded configuration from {path}")
    return parse_settings(lines, source=path)


def render_settings(settings: Settings, now: Optional[datetime.datetime] = None) -> str:
    stamp = (now or datetime.datetime.now()).strftime(config.TIMESTAMP_FORMAT)
    out = [
        "# Passman Configuration File",
        f"# Last updated: {stamp}",
        "",
    ]
    for key, (_, _, quoted) in SETTING_KEYS.items():
        value = settings.value_text(key)
        out.append(f'{key}="{value}"' if quoted else f"{key}={value}")
    return "\n".join(out) + "\n"


def save_settings(settings: Settings, path: Optional[str] = None) -> None:
    """
    Write settings to path atomically.

    Raises:
        OSError: If the file cannot be written
    """
    path = path or default_settings_path()
    utils.atomic_write_bytes(path, render_settings(settings).encode('utf-8'), private=False)
    logger.debug(f"Configuration saved to {path}")
