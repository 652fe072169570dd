"""Passphrase key derivation for fencryption."""
from typing import Optional, Union

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw

from fencryption.config import KdfParams, get_settings
from fencryption.core.exceptions import InvalidInputError, InvalidKeyError


KEY_LEN = 32
# Fixed salt: derive_key must map one passphrase to one key with no stored state.
# Per-stream randomness is added later with HKDF and a header salt.
APP_SALT = b"fencryption/derive-key/v1"


def derive_key(
    passphrase: Union[bytes, bytearray, str],
    params: Optional[KdfParams] = None,
    key_len: int = KEY_LEN,
) -> bytes:
    """
    Derive a fixed-length key from a passphrase using Argon2id.
    Returns raw derived key bytes. Raises InvalidInputError on an empty passphrase.
    """
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if len(passphrase) < 1:
        raise InvalidInputError("The key cannot be less than 1 character long")
    if params is None:
        params = get_settings().kdf

    try:
        return hash_secret_raw(
            secret=bytes(passphrase),
            salt=APP_SALT,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=key_len,
            type=Type.ID,
        )
    except Argon2Error as e:
        raise InvalidKeyError("Failed to derive key", str(e)) from e
