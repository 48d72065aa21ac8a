# pylint: disable=missing-module-docstring,missing-function-docstring

from pathlib import Path

import pytest

from config import AppConfig, parse_owner_numbers


def test_parse_owner_numbers_normalizes_entries():
    assert parse_owner_numbers("+15550001, 15550002@s.whatsapp.net, ,") == (
        "15550001@s.whatsapp.net",
        "15550002@s.whatsapp.net",
    )
    assert parse_owner_numbers(None) == ()
    assert parse_owner_numbers("") == ()


def test_load_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("BOT_NAME", "Relay")
    monkeypatch.setenv("OWNER_NUMBERS", "111,222")
    monkeypatch.setenv("PUBLIC_MODE", "true")
    monkeypatch.setenv("TIMEZONE", "Africa/Lagos")
    monkeypatch.setenv("BASE_DIR", str(tmp_path))
    monkeypatch.setenv("SESSION_DATA", "abc")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = AppConfig.load_from_env()

    assert config.bot_name == "Relay"
    assert config.owner_numbers == ("111@s.whatsapp.net", "222@s.whatsapp.net")
    assert config.public_mode is True
    assert config.timezone == "Africa/Lagos"
    assert config.base_dir == tmp_path
    assert config.session_data == "abc"
    assert config.port == 8080
    assert config.log_level == "debug"
    assert config.database_url is None


def test_load_from_env_defaults(monkeypatch: pytest.MonkeyPatch):
    for name in ("PORT", "SESSION_DATA", "PUBLIC_MODE", "PREFIX"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.load_from_env()

    assert config.port == 3000
    assert config.session_data is None
    assert config.public_mode is False
    assert config.prefix == "."


def test_invalid_port_raises(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PORT", "not-a-port")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()


def test_required_directories_are_under_base(tmp_path: Path):
    config = AppConfig(base_dir=tmp_path)

    dirs = config.required_directories()

    assert tmp_path / "auth_info_baileys" in dirs
    assert all(str(d).startswith(str(tmp_path)) for d in dirs)
