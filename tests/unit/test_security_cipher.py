"""Unit tests for the passphrase-keyed StreamCipher."""

import io
import os

import pytest

from fencryption.config import MAX_CHUNK_SIZE
from fencryption.core.exceptions import AuthenticationError, CryptoError, FileSystemError, InvalidInputError
from fencryption.security.cipher import MAGIC, MAX_RECORD_LEN, RECORD_HEADER, StreamCipher

CHUNK = 64
HEADER_LEN = 4 + 1 + 1 + 1 + 16 + 1 + 16 + 32
RECORD_OVERHEAD = 5 + 16

@pytest.fixture
def cipher():
    with StreamCipher("correct horse", chunk_size=CHUNK) as c:
        yield c

def _encrypt(cipher, data):
    out = io.BytesIO()
    cipher.encrypt_stream(io.BytesIO(data), out)
    return out.getvalue()

def _decrypt(cipher, blob):
    out = io.BytesIO()
    cipher.decrypt_stream(io.BytesIO(blob), out)
    return out.getvalue()

@pytest.mark.parametrize(
    "size",
    [0, 1, CHUNK - 1, CHUNK, CHUNK + 1, 3 * CHUNK, 10 * CHUNK + 7],
)
def test_stream_roundtrip_sizes(cipher, size):
    data = os.urandom(size)
    assert _decrypt(cipher, _encrypt(cipher, data)) == data

def test_stream_roundtrip_multi_megabyte():
    data = os.urandom(3 * 1024 * 1024 + 5)
    with StreamCipher("correct horse") as c:
        assert _decrypt(c, _encrypt(c, data)) == data

def test_stream_starts_with_magic(cipher):
    assert _encrypt(cipher, b"data").startswith(MAGIC)

def test_record_layout_sizes(cipher):
    """Each plaintext chunk becomes one record; exact multiples need no extra record."""
    assert len(_encrypt(cipher, b"")) == HEADER_LEN + RECORD_OVERHEAD
    assert len(_encrypt(cipher, b"x" * CHUNK * 2)) == HEADER_LEN + 2 * (RECORD_OVERHEAD + CHUNK)

def test_encryption_is_randomized(cipher):
    assert _encrypt(cipher, b"same") != _encrypt(cipher, b"same")

def test_new_instance_same_passphrase_decrypts(cipher):
    blob = _encrypt(cipher, b"portable")
    with StreamCipher("correct horse") as other:
        assert _decrypt(other, blob) == b"portable"

def test_wrong_key_is_authentication_error(cipher):
    blob = _encrypt(cipher, b"secret" * 100)
    with StreamCipher("wrong horse") as other:
        out = io.BytesIO()
        with pytest.raises(AuthenticationError):
            other.decrypt_stream(io.BytesIO(blob), out)
        assert out.getvalue() == b""

def test_tampered_body_is_authentication_error(cipher):
    blob = bytearray(_encrypt(cipher, b"hello world" * 50))
    blob[HEADER_LEN + 5 + 3] ^= 0x01
    with pytest.raises(AuthenticationError):
        _decrypt(cipher, bytes(blob))

def test_tampered_header_is_authentication_error(cipher):
    blob = bytearray(_encrypt(cipher, b"hello"))
    blob[10] ^= 0xFF  # inside the salt
    with pytest.raises(AuthenticationError, match="Wrong key or corrupted data"):
        _decrypt(cipher, bytes(blob))

def test_tampered_final_flag_is_authentication_error(cipher):
    blob = bytearray(_encrypt(cipher, b"x" * (CHUNK + 1)))
    # first record is not final; marking it final must not verify
    blob[HEADER_LEN + 4] = 1
    with pytest.raises(AuthenticationError):
        _decrypt(cipher, bytes(blob))

def test_dropped_final_record_is_detected(cipher):
    blob = _encrypt(cipher, b"x" * CHUNK * 3)
    truncated = blob[: -(RECORD_OVERHEAD + CHUNK)]
    with pytest.raises(AuthenticationError, match="truncated"):
        _decrypt(cipher, truncated)

def test_truncated_mid_record_is_detected(cipher):
    blob = _encrypt(cipher, os.urandom(500))
    with pytest.raises(AuthenticationError):
        _decrypt(cipher, blob[:-10])

def test_trailing_data_is_rejected(cipher):
    blob = _encrypt(cipher, b"abc") + b"\x00"
    with pytest.raises(AuthenticationError, match="corrupted"):
        _decrypt(cipher, blob)

def test_bad_magic_is_crypto_error(cipher):
    blob = b"NOPE" + _encrypt(cipher, b"abc")[4:]
    with pytest.raises(CryptoError, match="magic"):
        _decrypt(cipher, blob)

def test_empty_input_is_truncated(cipher):
    with pytest.raises(AuthenticationError):
        _decrypt(cipher, b"")

def test_in_memory_roundtrip(cipher):
    assert cipher.decrypt(cipher.encrypt(b"ad-hoc value")) == b"ad-hoc value"

def test_in_memory_wrong_key(cipher):
    blob = cipher.encrypt(b"ad-hoc value")
    with StreamCipher("nope") as other:
        with pytest.raises(AuthenticationError):
            other.decrypt(blob)

def test_empty_passphrase_rejected():
    with pytest.raises(InvalidInputError):
        StreamCipher("")

def test_close_wipes_key():
    c = StreamCipher("k")
    key = c._key
    c.close()
    assert key.wiped
    with pytest.raises(RuntimeError):
        c.encrypt(b"data")

def test_file_roundtrip(cipher, tmp_path):
    src = tmp_path / "plain.bin"
    enc = tmp_path / "plain.bin.enc"
    dec = tmp_path / "plain.out"
    data = os.urandom(1000)
    src.write_bytes(data)

    cipher.encrypt_file(src, enc)
    cipher.decrypt_file(enc, dec)
    assert dec.read_bytes() == data

def test_decrypt_file_failure_leaves_no_output(cipher, tmp_path):
    src = tmp_path / "plain.bin"
    enc = tmp_path / "plain.bin.enc"
    dec = tmp_path / "plain.out"
    src.write_bytes(b"z" * 1000)
    cipher.encrypt_file(src, enc)

    with StreamCipher("other") as other:
        with pytest.raises(AuthenticationError):
            other.decrypt_file(enc, dec)
    assert not dec.exists()

def test_file_helpers_refuse_existing_destination(cipher, tmp_path):
    src = tmp_path / "plain.bin"
    dest = tmp_path / "exists.enc"
    src.write_bytes(b"data")
    dest.write_bytes(b"keep me")

    with pytest.raises(FileSystemError):
        cipher.encrypt_file(src, dest)
    assert dest.read_bytes() == b"keep me"

def test_missing_source_is_filesystem_error(cipher, tmp_path):
    with pytest.raises(FileSystemError, match="Failed to encrypt"):
        cipher.encrypt_file(tmp_path / "missing", tmp_path / "out")
    assert not (tmp_path / "out").exists()

def test_oversized_record_length_rejected_before_reading(cipher):
    blob = _encrypt(cipher, b"abc")
    forged = blob[:HEADER_LEN] + RECORD_HEADER.pack(MAX_RECORD_LEN + 1, 1)
    with pytest.raises(AuthenticationError) as info:
        _decrypt(cipher, forged)
    assert info.value.detail == "bad record 0"


@pytest.mark.parametrize("size", [0, -1, MAX_CHUNK_SIZE + 1])
def test_invalid_chunk_size_rejected(size):
    with pytest.raises(ValueError, match="chunk_size"):
        StreamCipher("k", chunk_size=size)
