from __future__ import annotations

import pytest

from sedia_pos.config import ConfigError, PosConfig, load_config

_KEYS = (
    "SEDIA_POS_ENV",
    "SEDIA_POS_API_BASE_URL",
    "SEDIA_POS_API_BASE_URL_PROD",
    "SEDIA_POS_RETRIES",
    "SEDIA_POS_MAX_POLLS",
    "SEDIA_POS_POLL_INTERVAL_SECONDS",
    "SEDIA_POS_DEFAULT_BANK",
    "SEDIA_POS_VERIFY_SSL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _KEYS:
        # set then delete so values loaded from a .env file are undone as well
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SEDIA_POS_API_BASE_URL", "https://pos.example.com/")
    cfg = load_config(str(tmp_path / "missing.env"))
    assert cfg.api_base_url == "https://pos.example.com"
    assert cfg.retries == 3
    assert cfg.poll_interval_seconds == 3.0
    assert cfg.poll_limit is None
    assert cfg.default_bank == "bca"
    assert cfg.verify_ssl is True


def test_env_specific_base_url(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SEDIA_POS_ENV", "prod")
    monkeypatch.setenv("SEDIA_POS_API_BASE_URL", "https://dev.example.com")
    monkeypatch.setenv("SEDIA_POS_API_BASE_URL_PROD", "https://prod.example.com")
    cfg = load_config(str(tmp_path / "missing.env"))
    assert cfg.api_base_url == "https://prod.example.com"
    assert cfg.normalized_env == "prod"


def test_env_file_is_read(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("SEDIA_POS_MAX_POLLS=40\nSEDIA_POS_VERIFY_SSL=false\n", encoding="utf-8")
    cfg = load_config(str(env_file))
    assert cfg.max_polls == 40
    assert cfg.poll_limit == 40
    assert cfg.verify_ssl is False


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("SEDIA_POS_RETRIES", "-1"),
        ("SEDIA_POS_RETRIES", "three"),
        ("SEDIA_POS_POLL_INTERVAL_SECONDS", "0"),
        ("SEDIA_POS_MAX_POLLS", "-2"),
        ("SEDIA_POS_DEFAULT_BANK", "citibank"),
    ],
)
def test_invalid_values_raise(monkeypatch, tmp_path, key, value) -> None:
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.env"))


def test_api_access_requires_base_url() -> None:
    with pytest.raises(ConfigError):
        PosConfig().require_api()
