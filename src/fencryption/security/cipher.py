"""Passphrase-keyed streaming AEAD with a compact binary header.

Header layout (binary, all big-endian):
- 4 bytes: magic b'FCR1'
- 1 byte: version (1)
- 1 byte: alg_id (1 = AESGCM)
- 1 byte: len_salt (S)
- S bytes: per-stream HKDF salt
- 1 byte: len_nonce_seed (L)
- L bytes: nonce_seed
- 32 bytes: HMAC-SHA256 over everything above

Body: sequence of records: 4-byte ciphertext length + 1-byte final flag + ciphertext.
The associated data of every record binds its index and final flag, and a stream
always ends with exactly one final record, so reordering, dropping or truncating
records fails authentication.
"""
import hashlib
import hmac
import io
import logging
import os
import struct
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from fencryption.config import MAX_CHUNK_SIZE, KdfParams, get_settings
from fencryption.core.exceptions import (
    AuthenticationError,
    CryptoError,
    FencryptionError,
    InvalidKeyError,
    wrap_os_error,
)
from .kdf import KEY_LEN, derive_key
from .keys import SecretBuffer


logger = logging.getLogger(__name__)

MAGIC = b"FCR1"
VERSION = 1
ALG_ID_AESGCM = 1
SALT_LEN = 16
NONCE_SEED_LEN = 16
MAC_LEN = 32
TAG_LEN = 16
RECORD_HEADER = struct.Struct(">IB")
# no encryptor writes a longer record, so a corrupted length cannot force a huge read
MAX_RECORD_LEN = MAX_CHUNK_SIZE + TAG_LEN


def _make_nonce(seed: bytes, chunk_index: int) -> bytes:
    # 12-byte nonce from hashing seed||chunk_index.
    h = hashlib.sha256()
    h.update(seed)
    h.update(chunk_index.to_bytes(8, "big"))
    return h.digest()[:12]


def _associated_data(chunk_index: int, final: bool) -> bytes:
    return struct.pack(">QB", chunk_index, 1 if final else 0)


def _read_exact(source: BinaryIO, size: int, what: str) -> bytes:
    data = source.read(size)
    if len(data) != size:
        raise AuthenticationError("Encrypted data is truncated", f"short read in {what}")
    return data


class StreamCipher:
    """
    Authenticated, chunked encryption keyed by a passphrase.

    The passphrase is reduced to a fixed-size key with Argon2id
    (:func:`fencryption.security.kdf.derive_key`). Each stream gets a random
    salt from which HKDF-SHA256 derives the AES-256-GCM content key and the
    header MAC key, so encrypting the same data twice gives different output.

    The derived key is held in a :class:`SecretBuffer` and wiped by
    :meth:`close`, on context-manager exit, or when the instance is dropped.
    """

    def __init__(
        self,
        passphrase: Union[bytes, bytearray, str],
        kdf_params: Optional[KdfParams] = None,
        chunk_size: Optional[int] = None,
    ):
        settings = get_settings()
        self.chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        if not 1 <= self.chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")

        secret = SecretBuffer(passphrase)
        try:
            key = derive_key(secret.reveal(), kdf_params or settings.kdf)
        finally:
            secret.wipe()
        if len(key) != KEY_LEN:
            raise InvalidKeyError("Derived key has an unusable size", f"{len(key)} bytes")
        self._key = SecretBuffer(key)

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        key = getattr(self, "_key", None)
        if key is not None:
            key.wipe()

    def __enter__(self) -> "StreamCipher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        self.close()

    def _stream_keys(self, salt: bytes) -> Tuple[bytes, bytes]:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=64, salt=salt, info=b"fencryption-stream")
        material = hkdf.derive(self._key.reveal())
        return material[:32], material[32:]

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def encrypt_stream(self, source: BinaryIO, dest: BinaryIO) -> None:
        """Read ``source`` to the end and write its encrypted form to ``dest``."""
        salt = os.urandom(SALT_LEN)
        nonce_seed = os.urandom(NONCE_SEED_LEN)
        cek, mac_key = self._stream_keys(salt)

        header = bytearray()
        header += MAGIC
        header += struct.pack("B", VERSION)
        header += struct.pack("B", ALG_ID_AESGCM)
        header += struct.pack("B", len(salt))
        header += salt
        header += struct.pack("B", len(nonce_seed))
        header += nonce_seed

        aead = AESGCM(cek)
        chunk_index = 0
        try:
            dest.write(bytes(header))
            dest.write(hmac.new(mac_key, bytes(header), hashlib.sha256).digest())

            chunk = source.read(self.chunk_size)
            while True:
                following = source.read(self.chunk_size) if chunk else b""
                final = not following
                nonce = _make_nonce(nonce_seed, chunk_index)
                try:
                    ct = aead.encrypt(nonce, chunk, _associated_data(chunk_index, final))
                except (ValueError, OverflowError) as e:
                    raise CryptoError("Failed to encrypt chunk", str(e)) from e
                dest.write(RECORD_HEADER.pack(len(ct), 1 if final else 0))
                dest.write(ct)
                chunk_index += 1
                if final:
                    break
                chunk = following
        except OSError as e:
            raise wrap_os_error("read/write stream while encrypting", e) from e
        logger.debug("Encrypted stream in %d chunk(s)", chunk_index)

    def decrypt_stream(self, source: BinaryIO, dest: BinaryIO) -> None:
        """
        Verify and decrypt a stream produced by :meth:`encrypt_stream`.

        Every record is authenticated before its plaintext is written, so
        ``dest`` only ever receives verified bytes. When a later record fails,
        the verified prefix already written is incomplete; use
        :meth:`decrypt_file` to get all-or-nothing output on disk.
        """
        try:
            self._decrypt_records(source, dest)
        except OSError as e:
            raise wrap_os_error("read/write stream while decrypting", e) from e

    def _decrypt_records(self, source: BinaryIO, dest: BinaryIO) -> None:
        magic = _read_exact(source, 4, "magic")
        if magic != MAGIC:
            raise CryptoError("Invalid encrypted data (magic mismatch)")
        ver = ord(_read_exact(source, 1, "version"))
        if ver != VERSION:
            raise CryptoError("Unsupported version", str(ver))
        alg = ord(_read_exact(source, 1, "algorithm"))
        if alg != ALG_ID_AESGCM:
            raise CryptoError("Unsupported algorithm", str(alg))
        salt_len = ord(_read_exact(source, 1, "salt length"))
        salt = _read_exact(source, salt_len, "salt")
        seed_len = ord(_read_exact(source, 1, "nonce seed length"))
        nonce_seed = _read_exact(source, seed_len, "nonce seed")

        header = bytearray()
        header += magic
        header += struct.pack("B", ver)
        header += struct.pack("B", alg)
        header += struct.pack("B", salt_len)
        header += salt
        header += struct.pack("B", seed_len)
        header += nonce_seed

        mac = _read_exact(source, MAC_LEN, "header MAC")
        cek, mac_key = self._stream_keys(salt)
        expected = hmac.new(mac_key, bytes(header), hashlib.sha256).digest()
        if not hmac.compare_digest(mac, expected):
            raise AuthenticationError("Wrong key or corrupted data", "header authentication failed")

        aead = AESGCM(cek)
        chunk_index = 0
        while True:
            record = source.read(RECORD_HEADER.size)
            if len(record) != RECORD_HEADER.size:
                raise AuthenticationError("Encrypted data is truncated", "missing final chunk")
            ct_len, flag = RECORD_HEADER.unpack(record)
            if flag not in (0, 1) or ct_len < TAG_LEN or ct_len > MAX_RECORD_LEN:
                raise AuthenticationError("Wrong key or corrupted data", f"bad record {chunk_index}")
            ct = _read_exact(source, ct_len, f"chunk {chunk_index}")
            final = flag == 1
            nonce = _make_nonce(nonce_seed, chunk_index)
            try:
                pt = aead.decrypt(nonce, ct, _associated_data(chunk_index, final))
            except InvalidTag as e:
                raise AuthenticationError(
                    "Wrong key or corrupted data", f"chunk {chunk_index} failed authentication"
                ) from e
            dest.write(pt)
            chunk_index += 1
            if final:
                break

        if source.read(1):
            raise AuthenticationError("Wrong key or corrupted data", "trailing data after final chunk")
        logger.debug("Decrypted stream in %d chunk(s)", chunk_index)

    # ------------------------------------------------------------------
    # In-memory helpers
    # ------------------------------------------------------------------

    def encrypt(self, buffer: bytes) -> bytes:
        out = io.BytesIO()
        self.encrypt_stream(io.BytesIO(buffer), out)
        return out.getvalue()

    def decrypt(self, buffer: bytes) -> bytes:
        out = io.BytesIO()
        self.decrypt_stream(io.BytesIO(buffer), out)
        return out.getvalue()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def encrypt_file(self, src: Union[str, Path], dest: Union[str, Path]) -> None:
        self._transform_file(self.encrypt_stream, Path(src), Path(dest), "encrypt")

    def decrypt_file(self, src: Union[str, Path], dest: Union[str, Path]) -> None:
        """Decrypt ``src`` into ``dest``; on any failure ``dest`` is removed."""
        self._transform_file(self.decrypt_stream, Path(src), Path(dest), "decrypt")

    def _transform_file(self, operation, src: Path, dest: Path, verb: str) -> None:
        created = False
        try:
            with open(src, "rb") as inf:
                with open(dest, "xb") as outf:
                    created = True
                    operation(inf, outf)
        except OSError as e:
            _discard(dest, created)
            raise wrap_os_error(f"{verb} {src}", e) from e
        except FencryptionError:
            _discard(dest, created)
            raise


def _discard(path: Path, created: bool) -> None:
    if not created:
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", path, e)
