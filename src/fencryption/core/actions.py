"""Single-item operations built on the batch, pack and cipher layers."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from fencryption.security.cipher import StreamCipher
from .batch import BatchEncryptor
from .exceptions import InvalidInputError, SourceNotDirectoryError


@dataclass(frozen=True)
class DecryptedText:
    raw: bytes

    @property
    def base64(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")

    @property
    def utf8(self) -> Optional[str]:
        try:
            return self.raw.decode("utf-8")
        except UnicodeDecodeError:
            return None


def pack_directory(
    path: Union[str, Path],
    passphrase: Union[bytes, str],
    delete_original: bool = False,
    overwrite: bool = False,
) -> Tuple[float, Path]:
    """Encrypt one directory into ``<name>.pack``; return (elapsed seconds, pack path)."""
    path = Path(path)
    if not path.is_dir():
        raise SourceNotDirectoryError("The path must lead to a directory", str(path))

    result = BatchEncryptor().run([path], None, passphrase, overwrite, delete_original)
    (item,) = result.items
    if item.error is not None:
        raise item.error
    return result.elapsed, item.output_path


def encrypt_text(passphrase: Union[bytes, str], data: Union[bytes, str]) -> str:
    """Encrypt a short value and return it base64 encoded."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    with StreamCipher(passphrase) as cipher:
        return base64.b64encode(cipher.encrypt(data)).decode("ascii")


def decrypt_text(passphrase: Union[bytes, str], encoded: str) -> DecryptedText:
    """Decrypt a base64 value produced by :func:`encrypt_text`."""
    try:
        blob = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError("Wrongly base64 encoded data", str(e)) from e
    with StreamCipher(passphrase) as cipher:
        return DecryptedText(cipher.decrypt(blob))
