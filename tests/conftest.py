"""Shared fixtures: cheap Argon2 parameters and small chunks for every test."""

import pytest

from fencryption.config import reset_settings


PASSPHRASE = "correct horse"


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Keep key derivation fast and force multi-chunk streams on small data."""
    monkeypatch.setenv("FENCRYPTION_KDF_TIME_COST", "1")
    monkeypatch.setenv("FENCRYPTION_KDF_MEMORY_COST", "1024")
    monkeypatch.setenv("FENCRYPTION_KDF_PARALLELISM", "1")
    monkeypatch.setenv("FENCRYPTION_CHUNK_SIZE", "4096")
    monkeypatch.delenv("FENCRYPTION_TMP_DIR", raising=False)
    monkeypatch.delenv("FENCRYPTION_LOG_LEVEL", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture
def tree(tmp_path):
    """
    A small directory tree:

        docs/
          a.txt            "hello"
          empty.bin        0 bytes
          big.bin          > one chunk
          sub/b.txt        "world"
          sub/deeper/deepest/c.txt
          sub/void/        empty directory
    """
    root = tmp_path / "docs"
    (root / "sub" / "deeper" / "deepest").mkdir(parents=True)
    (root / "sub" / "void").mkdir()
    (root / "a.txt").write_text("hello")
    (root / "empty.bin").write_bytes(b"")
    (root / "big.bin").write_bytes(bytes(range(256)) * 100)
    (root / "sub" / "b.txt").write_text("world")
    (root / "sub" / "deeper" / "deepest" / "c.txt").write_text("deep")
    return root


def _snapshot(root):
    """Map relative POSIX path -> file bytes (None for directories)."""
    result = {}
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root).as_posix()
        result[rel] = None if p.is_dir() else p.read_bytes()
    return result


@pytest.fixture
def snapshot():
    return _snapshot
