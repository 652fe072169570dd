"""
Open-pack workflow: decrypt a pack into a working directory, let the user edit
it, then either re-seal the edits over the original pack or discard them.

States::

    NEW -> OPENING -> OPEN -> RESEALING  -> CLOSED
                          +-> DISCARDING -> CLOSED

How the decision token arrives (a key press, a test double) is up to the
caller; :meth:`InteractiveReseal.run` only needs a callable returning it.
"""

from __future__ import annotations

import logging
import shutil
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from fencryption.security.cipher import StreamCipher
from .exceptions import FencryptionError, InvalidInputError, ResealError, wrap_os_error
from .pack import PackCodec
from .tmp import TempWorkspace


logger = logging.getLogger(__name__)

UPDATE_KEY = "u"


class ResealState(Enum):
    NEW = "new"
    OPENING = "opening"
    OPEN = "open"
    RESEALING = "resealing"
    DISCARDING = "discarding"
    CLOSED = "closed"


class ResealPhase(Enum):
    DECRYPT = "decrypt"
    UNPACK = "unpack"
    PACK = "pack"
    ENCRYPT = "encrypt"
    REPLACE = "replace"
    CLEANUP = "cleanup"


class ResealOutcome(Enum):
    UPDATED = "updated"
    DISCARDED = "discarded"


class InteractiveReseal:
    """
    Drives one pack file through open -> decide -> reseal/discard.

    The working directory defaults to the pack's file stem next to the pack
    (``notes.pack`` opens into ``notes/``). Re-sealing packs and encrypts the
    working directory before anything is replaced, and the working directory is
    only removed once the new pack sits at the original path, so a failure
    leaves the edits on disk and the state back at OPEN.
    """

    def __init__(
        self,
        pack_path: Union[str, Path],
        passphrase: Union[bytes, str],
        working_dir: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
        codec: Optional[PackCodec] = None,
        cipher_factory=StreamCipher,
    ):
        self.pack_path = Path(pack_path)
        if working_dir is None:
            working_dir = self.pack_path.with_name(self.pack_path.stem)
        self.working_dir = Path(working_dir)
        self.overwrite = overwrite
        self.codec = codec or PackCodec()
        self._passphrase = passphrase
        self._cipher_factory = cipher_factory
        self._cipher: Optional[StreamCipher] = None
        self._workspace: Optional[TempWorkspace] = None
        self.state = ResealState.NEW
        self.open_elapsed: float = 0.0

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    def open(self) -> Path:
        """Decrypt and unpack the pack; return the working directory."""
        if self.state is not ResealState.NEW:
            raise RuntimeError(f"Cannot open from state {self.state.value}")
        if not self.pack_path.is_file():
            raise InvalidInputError("The pack file doesn't exist", str(self.pack_path))
        if self.working_dir.resolve() == self.pack_path.resolve():
            raise InvalidInputError(
                "Cannot name a working directory after the pack file; give the pack a suffix",
                str(self.pack_path),
            )

        started = time.monotonic()
        self.state = ResealState.OPENING
        try:
            self._cipher = self._step(
                ResealPhase.DECRYPT, "Failed to create cipher", self._cipher_factory, self._passphrase
            )
            self._workspace = self._step(ResealPhase.DECRYPT, "Failed to create temporary directory", TempWorkspace)
            plain = self._workspace.unique_path(".pack")
            self._step(ResealPhase.DECRYPT, "Failed to decrypt pack", self._cipher.decrypt_file, self.pack_path, plain)
            try:
                self._step(
                    ResealPhase.UNPACK,
                    "Failed to unpack pack",
                    self.codec.unpack,
                    plain,
                    self.working_dir,
                    self.overwrite,
                )
            finally:
                plain.unlink(missing_ok=True)
        except BaseException:
            self.close()
            raise

        self._passphrase = None
        self.open_elapsed = time.monotonic() - started
        self.state = ResealState.OPEN
        logger.info("Opened %s into %s", self.pack_path, self.working_dir)
        return self.working_dir

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def decide(self, token: str) -> ResealOutcome:
        """Apply the user's decision: ``u`` re-seals, anything else discards."""
        if self.state is not ResealState.OPEN:
            raise RuntimeError(f"Cannot decide from state {self.state.value}")
        if token == UPDATE_KEY:
            self._reseal()
            return ResealOutcome.UPDATED
        self._discard()
        return ResealOutcome.DISCARDED

    def run(self, await_decision: Callable[["InteractiveReseal"], str]) -> ResealOutcome:
        """
        Open the pack, block on ``await_decision`` and apply its answer.

        The session is closed on every exit. When the decision or the re-seal
        fails, the working directory stays on disk with the user's edits and
        the original pack is untouched.
        """
        self.open()
        try:
            return self.decide(await_decision(self))
        finally:
            self.close()

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _reseal(self) -> None:
        self.state = ResealState.RESEALING
        new_pack = self._workspace.unique_path(".pack")
        sealed = self._workspace.unique_path()
        try:
            self._step(ResealPhase.PACK, "Failed to update pack", self.codec.create, new_pack, self.working_dir)
            try:
                self._step(ResealPhase.ENCRYPT, "Failed to encrypt updated pack", self._cipher.encrypt_file, new_pack, sealed)
            finally:
                new_pack.unlink(missing_ok=True)
            self._step(ResealPhase.REPLACE, "Failed to update pack file", shutil.move, str(sealed), str(self.pack_path))
        except ResealError:
            sealed.unlink(missing_ok=True)
            self.state = ResealState.OPEN
            raise

        logger.info("Updated pack %s", self.pack_path)
        self._remove_working_dir()
        self.close()

    def _discard(self) -> None:
        self.state = ResealState.DISCARDING
        self._remove_working_dir()
        logger.info("Discarded changes to %s", self.pack_path)
        self.close()

    def _remove_working_dir(self) -> None:
        try:
            shutil.rmtree(self.working_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.close()
            error = wrap_os_error(f"remove working directory {self.working_dir}", e)
            raise ResealError(ResealPhase.CLEANUP, error.message, error.detail) from e

    def _step(self, phase: ResealPhase, message: str, func, *args):
        try:
            return func(*args)
        except FencryptionError as e:
            logger.debug("Phase %s failed: %s", phase.value, e)
            raise ResealError(phase, message, str(e)) from e
        except OSError as e:
            raise ResealError(phase, message, wrap_os_error(phase.value, e).detail) from e

    def close(self) -> None:
        """Remove the temp workspace and wipe the key; the working directory is left alone."""
        if self._workspace is not None:
            self._workspace.cleanup()
            self._workspace = None
        if self._cipher is not None:
            self._cipher.close()
            self._cipher = None
        self._passphrase = None
        self.state = ResealState.CLOSED
