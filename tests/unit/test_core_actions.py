"""Tests for pack_directory and the text helpers."""

import base64

import pytest

from fencryption.core.actions import DecryptedText, decrypt_text, encrypt_text, pack_directory
from fencryption.core.batch import BatchDecryptor
from fencryption.core.exceptions import (
    AuthenticationError,
    InvalidInputError,
    OutputExistsError,
    SourceNotDirectoryError,
)


def test_pack_directory_creates_pack(tree, passphrase, tmp_path, snapshot):
    before = snapshot(tree)
    elapsed, output = pack_directory(tree, passphrase)
    assert output == tmp_path / "docs.pack"
    assert output.is_file()
    assert elapsed >= 0
    assert tree.exists()

    restored = tmp_path / "restored"
    BatchDecryptor().run([output], restored, passphrase)
    assert snapshot(restored) == before


def test_pack_directory_delete_original(tree, passphrase):
    _, output = pack_directory(tree, passphrase, delete_original=True)
    assert output.exists()
    assert not tree.exists()


def test_pack_directory_rejects_file(tmp_path, passphrase):
    f = tmp_path / "file.txt"
    f.write_text("x")
    with pytest.raises(SourceNotDirectoryError):
        pack_directory(f, passphrase)


def test_pack_directory_existing_pack(tree, passphrase, tmp_path):
    (tmp_path / "docs.pack").write_bytes(b"old")
    with pytest.raises(OutputExistsError):
        pack_directory(tree, passphrase)
    assert (tmp_path / "docs.pack").read_bytes() == b"old"

    _, output = pack_directory(tree, passphrase, overwrite=True)
    assert output.read_bytes() != b"old"


def test_text_round_trip(passphrase):
    encoded = encrypt_text(passphrase, "hello there")
    base64.b64decode(encoded, validate=True)

    result = decrypt_text(passphrase, encoded)
    assert result.raw == b"hello there"
    assert result.utf8 == "hello there"
    assert result.base64 == base64.b64encode(b"hello there").decode()


def test_text_is_randomized(passphrase):
    assert encrypt_text(passphrase, "same") != encrypt_text(passphrase, "same")


def test_decrypt_text_wrong_key(passphrase):
    encoded = encrypt_text(passphrase, "secret")
    with pytest.raises(AuthenticationError):
        decrypt_text("other", encoded)


def test_decrypt_text_bad_base64(passphrase):
    with pytest.raises(InvalidInputError, match="base64"):
        decrypt_text(passphrase, "not base64!!")


def test_decrypted_text_invalid_utf8():
    result = DecryptedText(b"\xff\xfe")
    assert result.utf8 is None
    assert result.base64 == "//4="
