# tests/test_settings.py

import os
import datetime

import pytest

from passman import config
from passman.errors import ConfigError
from passman.settings import (
    Settings,
    default_settings_path,
    load_settings,
    parse_settings,
    render_settings,
    save_settings,
)


def test_defaults():
    settings = Settings()
    assert settings.default_password_length == 12
    assert settings.default_search_mode == "and"
    assert settings.vault_path == os.path.join(config.DEFAULT_SAVE_LOCATION, "credentials.json.enc")


def test_parse_reads_known_keys_and_strips_quotes():
    settings = parse_settings([
        "# comment",
        "",
        'SAVE_LOCATION="/srv/secrets"',
        "DEFAULT_PASSWORD_LENGTH=20",
        "DEFAULT_PASSWORD_SYMBOLS=n",
        'DEFAULT_SEARCH_MODE="OR"',
        'DEFAULT_EMAIL="me@example.com"',
    ])
    assert settings.save_location == "/srv/secrets"
    assert settings.default_password_length == 20
    assert settings.default_password_symbols is False
    assert settings.default_search_mode == "or"
    assert settings.default_email == "me@example.com"


def test_parse_ignores_bad_lines(caplog):
    """
    Unknown keys, malformed lines and invalid values are logged and skipped.
    """
    settings = parse_settings([
        "GARBAGE",
        "UNKNOWN_KEY=1",
        "DEFAULT_PASSWORD_LENGTH=abc",
        "CLIPBOARD_CLEAR_DELAY=-3",
    ], source="test.conf")

    assert settings == Settings()
    assert "Unknown configuration key 'UNKNOWN_KEY'" in caplog.text
    assert "malformed line 1" in caplog.text
    assert "DEFAULT_PASSWORD_LENGTH" in caplog.text


@pytest.mark.parametrize("key, value", [
    ("DEFAULT_PASSWORD_LENGTH", "0"),
    ("DEFAULT_PASSWORD_UPPER", "maybe"),
    ("DEFAULT_SEARCH_MODE", "xor"),
    ("SAVE_LOCATION", ""),
    ("NOPE", "1"),
])
def test_update_rejects_invalid_values(key, value):
    with pytest.raises(ConfigError):
        Settings().update(key, value)


def test_value_text_uses_y_n_for_booleans():
    settings = Settings(default_password_upper=False)
    assert settings.value_text("DEFAULT_PASSWORD_UPPER") == "n"
    assert settings.value_text("DEFAULT_PASSWORD_NUMBERS") == "y"


def test_render_format():
    text = render_settings(Settings(default_email="a@b.c"), now=datetime.datetime(2024, 1, 1, 12, 0, 0))
    lines = text.splitlines()
    assert lines[0] == "# Passman Configuration File"
    assert lines[1] == "# Last updated: 2024-01-01 12:00:00"
    assert 'DEFAULT_EMAIL="a@b.c"' in lines
    assert "DEFAULT_PASSWORD_LENGTH=12" in lines


def test_load_creates_missing_file(tmp_path):
    path = str(tmp_path / "conf" / "passman.conf")
    settings = load_settings(path)

    assert settings == Settings()
    assert os.path.exists(path)


def test_save_then_load(tmp_path):
    path = str(tmp_path / "passman.conf")
    original = Settings(save_location=str(tmp_path), default_password_length=32,
                        default_password_numbers=False, default_service="Google",
                        clipboard_clear_delay=30)
    save_settings(original, path)

    assert load_settings(path) == original


def test_env_var_overrides_path(monkeypatch, tmp_path):
    monkeypatch.setenv(config.CONFIG_PATH_ENV, str(tmp_path / "custom.conf"))
    assert default_settings_path() == str(tmp_path / "custom.conf")

    monkeypatch.delenv(config.CONFIG_PATH_ENV)
    assert default_settings_path() == os.path.join(config.CONFIG_DIR, config.CONFIG_FILE_NAME)


def test_load_undecodable_file_falls_back_to_defaults(tmp_path, caplog):
    """
    A settings file that is not UTF-8 must not stop the program from starting.
    """
    path = tmp_path / "passman.conf"
    path.write_bytes(b"\xff\xfeDEFAULT_PASSWORD_LENGTH=\x80\x81\n")

    with caplog.at_level("WARNING"):
        settings = load_settings(str(path))

    assert settings == Settings()
    assert "Could not read configuration file" in caplog.text
    assert path.read_bytes().startswith(b"\xff\xfe")


def test_load_unreadable_path_falls_back_to_defaults(tmp_path, caplog):
    # a directory exists but cannot be opened as a file
    path = tmp_path / "passman.conf"
    path.mkdir()

    with caplog.at_level("WARNING"):
        assert load_settings(str(path)) == Settings()
    assert "Could not read configuration file" in caplog.text
