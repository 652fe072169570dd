"""Unit tests for the Key Derivation Function (KDF) module."""

import os

import pytest

from fencryption.config import KdfParams
from fencryption.core.exceptions import InvalidInputError, InvalidKeyError
from fencryption.security.kdf import KEY_LEN, derive_key


def test_derive_key_is_deterministic():
    """The same passphrase always yields the same key."""
    assert derive_key(b"correct horse") == derive_key(b"correct horse")


def test_derive_key_fixed_length():
    """Output length does not depend on passphrase length."""
    assert len(derive_key(b"x")) == KEY_LEN
    assert len(derive_key(b"x" * 10_000)) == KEY_LEN


def test_derive_key_distinct_passphrases_give_distinct_keys():
    """Property check over many random passphrases."""
    passphrases = {os.urandom(n % 24 + 1) for n in range(64)}
    keys = {derive_key(p) for p in passphrases}
    assert len(keys) == len(passphrases)


def test_derive_key_string_and_bytes_agree():
    """Ensure passing the same passphrase as string or bytes yields the same key."""
    assert derive_key("pässword") == derive_key("pässword".encode("utf-8"))


def test_derive_key_rejects_empty_passphrase():
    with pytest.raises(InvalidInputError, match="less than 1 character"):
        derive_key(b"")


def test_derive_key_custom_params_change_key():
    """Cost parameters are part of the derivation."""
    cheap = KdfParams(time_cost=1, memory_cost=1024, parallelism=1)
    other = KdfParams(time_cost=2, memory_cost=1024, parallelism=1)
    assert derive_key(b"pass", cheap) != derive_key(b"pass", other)


def test_derive_key_custom_length():
    assert len(derive_key(b"pass", key_len=64)) == 64


def test_derive_key_invalid_params_raise_invalid_key():
    """Argon2 rejects memory below 8 KiB per lane."""
    with pytest.raises(InvalidKeyError):
        derive_key(b"pass", KdfParams(time_cost=1, memory_cost=1, parallelism=1))


def test_kdf_params_to_dict():
    assert KdfParams(time_cost=2, memory_cost=1024, parallelism=4).to_dict() == {
        "algo": "argon2id",
        "time": 2,
        "memory": 1024,
        "parallelism": 4,
    }
