"""Zero-on-drop holder for passphrases and derived keys.

Python gives no hard guarantee about copies made by the interpreter or by
C extensions, so this is a best-effort bound on the secret's lifetime: the
bytes live in one mutable buffer that is overwritten when the holder is
wiped, closed as a context manager, or garbage collected.
"""
from __future__ import annotations

from typing import Union


class SecretBuffer:
    __slots__ = ("_buf",)

    def __init__(self, data: Union[bytes, bytearray, str]):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buf = bytearray(data)

    def __len__(self) -> int:
        return 0 if self.wiped else len(self._buf)

    def __repr__(self) -> str:
        state = "wiped" if self.wiped else f"{len(self._buf)} bytes"
        return f"SecretBuffer(<{state}>)"

    @property
    def wiped(self) -> bool:
        return getattr(self, "_buf", None) is None

    def reveal(self) -> bytes:
        """Return an immutable copy of the secret for a primitive that needs bytes."""
        if self._buf is None:
            raise RuntimeError("Secret has been wiped")
        return bytes(self._buf)

    def wipe(self) -> None:
        """Overwrite the buffer with zeros and drop it."""
        buf = getattr(self, "_buf", None)
        if buf is None:
            return
        for i in range(len(buf)):
            buf[i] = 0
        self._buf = None

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        self.wipe()
