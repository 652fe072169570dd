"""Tests for environment-driven settings."""

import logging

import pytest

from fencryption.config import KdfParams, get_settings, load_settings, reset_settings
from fencryption.core.exceptions import InvalidInputError


def test_defaults(monkeypatch):
    for name in (
        "FENCRYPTION_CHUNK_SIZE",
        "FENCRYPTION_KDF_TIME_COST",
        "FENCRYPTION_KDF_MEMORY_COST",
        "FENCRYPTION_KDF_PARALLELISM",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.chunk_size == 64 * 1024
    assert settings.kdf == KdfParams()
    assert settings.tmp_dir is None
    assert settings.log_level == logging.WARNING


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("FENCRYPTION_CHUNK_SIZE", "1024")
    monkeypatch.setenv("FENCRYPTION_TMP_DIR", str(tmp_path))
    monkeypatch.setenv("FENCRYPTION_LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.chunk_size == 1024
    assert settings.kdf.time_cost == 1
    assert settings.kdf.memory_cost == 1024
    assert settings.tmp_dir == str(tmp_path)
    assert settings.log_level == logging.DEBUG


@pytest.mark.parametrize(
    "name,value",
    [
        ("FENCRYPTION_CHUNK_SIZE", "abc"),
        ("FENCRYPTION_CHUNK_SIZE", "0"),
        ("FENCRYPTION_CHUNK_SIZE", str(64 * 1024 * 1024 + 1)),
        ("FENCRYPTION_KDF_MEMORY_COST", "4"),
        ("FENCRYPTION_LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(InvalidInputError):
        load_settings()


def test_settings_are_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("FENCRYPTION_CHUNK_SIZE", "2048")
    assert get_settings() is first
    reset_settings()
    assert get_settings().chunk_size == 2048
