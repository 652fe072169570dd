"""Security helpers: passphrase KDF and streaming encryption primitives for fencryption.

This package provides:
- Argon2id-based derivation of a fixed-size key from a passphrase
- A zero-on-drop buffer for passphrases and derived keys
- Streaming AEAD (AES-GCM) encryption/decryption with chunking
"""

from .kdf import derive_key
from .keys import SecretBuffer
from .cipher import StreamCipher

__all__ = [
    "derive_key",
    "SecretBuffer",
    "StreamCipher",
]
