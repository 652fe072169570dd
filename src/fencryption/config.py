"""Runtime settings for fencryption.

Settings are read from environment variables so the CLI and tests can tune
the cipher without extra flags:

- ``FENCRYPTION_CHUNK_SIZE``: plaintext bytes per encrypted record (default 64 KiB, at most 64 MiB)
- ``FENCRYPTION_KDF_TIME_COST``: Argon2id iterations (default 3)
- ``FENCRYPTION_KDF_MEMORY_COST``: Argon2id memory in KiB (default 65536)
- ``FENCRYPTION_KDF_PARALLELISM``: Argon2id lanes (default 1)
- ``FENCRYPTION_TMP_DIR``: parent directory for temporary workspaces
- ``FENCRYPTION_LOG_LEVEL``: logging level name for the CLI (default WARNING)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from fencryption.core.exceptions import InvalidInputError


DEFAULT_CHUNK_SIZE = 64 * 1024
# largest plaintext chunk per record; decryption rejects longer records
MAX_CHUNK_SIZE = 64 * 1024 * 1024


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters used by :func:`fencryption.security.kdf.derive_key`."""

    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 1

    def to_dict(self) -> Dict:
        return {
            "algo": "argon2id",
            "time": self.time_cost,
            "memory": self.memory_cost,
            "parallelism": self.parallelism,
        }


@dataclass(frozen=True)
class Settings:
    """Resolved configuration values."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    kdf: KdfParams = field(default_factory=KdfParams)
    tmp_dir: Optional[str] = None
    log_level: int = logging.WARNING


def _int_from_env(name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidInputError(f"{name} must be an integer", f"got {raw!r}")
    if value < minimum:
        raise InvalidInputError(f"{name} must be at least {minimum}", f"got {value}")
    if maximum is not None and value > maximum:
        raise InvalidInputError(f"{name} must be at most {maximum}", f"got {value}")
    return value


def _level_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        raise InvalidInputError(f"{name} is not a logging level", f"got {raw!r}")
    return level


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    kdf = KdfParams(
        time_cost=_int_from_env("FENCRYPTION_KDF_TIME_COST", KdfParams.time_cost),
        memory_cost=_int_from_env("FENCRYPTION_KDF_MEMORY_COST", KdfParams.memory_cost, minimum=8),
        parallelism=_int_from_env("FENCRYPTION_KDF_PARALLELISM", KdfParams.parallelism),
    )
    return Settings(
        chunk_size=_int_from_env("FENCRYPTION_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, maximum=MAX_CHUNK_SIZE),
        kdf=kdf,
        tmp_dir=os.getenv("FENCRYPTION_TMP_DIR") or None,
        log_level=_level_from_env("FENCRYPTION_LOG_LEVEL", logging.WARNING),
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
