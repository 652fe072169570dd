"""
Batch encryption and decryption over a mixed list of files and directories.

Each input path is classified exactly once as success, skipped or failed.
A failure on one path never stops the batch; only precondition violations
(checked before anything is touched) abort the whole call.

Output naming:
- files encrypt to ``<name>.enc`` and directories to ``<name>.pack``
- ``<name>.enc`` decrypts to ``<name>``, ``<name>.pack`` decrypts and unpacks
  into the directory ``<name>``, anything else decrypts to ``<name>.dec``
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from fencryption.security.cipher import StreamCipher
from .exceptions import (
    FencryptionError,
    InvalidInputError,
    OutputExistsError,
    wrap_os_error,
)
from .pack import PackCodec
from .tmp import TempWorkspace


logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".enc"
PACK_SUFFIX = ".pack"
DECRYPTED_SUFFIX = ".dec"
UNKNOWN_ENTRY_TYPE = "unknown entry type"

PathLike = Union[str, Path]


class ItemStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchItem:
    """Outcome for one input path."""

    path: Path
    status: ItemStatus
    output_path: Optional[Path] = None
    reason: Optional[str] = None
    error: Optional[FencryptionError] = None

    @classmethod
    def success(cls, path: Path, output_path: Path) -> "BatchItem":
        return cls(path=path, status=ItemStatus.SUCCESS, output_path=output_path)

    @classmethod
    def skipped(cls, path: Path, reason: str = UNKNOWN_ENTRY_TYPE) -> "BatchItem":
        return cls(path=path, status=ItemStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, path: Path, error: FencryptionError) -> "BatchItem":
        return cls(path=path, status=ItemStatus.FAILED, reason=str(error), error=error)


@dataclass
class BatchResult:
    elapsed: float
    items: List[BatchItem] = field(default_factory=list)

    def _with_status(self, status: ItemStatus) -> List[BatchItem]:
        return [item for item in self.items if item.status is status]

    @property
    def succeeded(self) -> List[BatchItem]:
        return self._with_status(ItemStatus.SUCCESS)

    @property
    def skipped(self) -> List[BatchItem]:
        return self._with_status(ItemStatus.SKIPPED)

    @property
    def failed(self) -> List[BatchItem]:
        return self._with_status(ItemStatus.FAILED)


def _absolute(path: Path) -> Path:
    # abspath keeps symlinked inputs as named and turns "." into a real name
    return Path(os.path.abspath(path))


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _is_within(path: Path, directory: Path) -> bool:
    # resolve both so "dir/../dir/x" and symlinked parents are caught
    target = path.resolve()
    root = directory.resolve()
    return target == root or root in target.parents


class BatchProcessor:
    """
    Shared driver for :class:`BatchEncryptor` and :class:`BatchDecryptor`.

    Abstract: subclasses implement ``_process_file`` and ``_process_directory``
    and may override ``_delete_original``. Do not instantiate it directly.
    """

    verb = "process"

    def __init__(self, codec: Optional[PackCodec] = None, cipher_factory=StreamCipher):
        self.codec = codec or PackCodec()
        self.cipher_factory = cipher_factory

    def run(
        self,
        paths: Sequence[PathLike],
        output_path: Optional[PathLike],
        passphrase: Union[bytes, str],
        overwrite: bool = False,
        delete_original: bool = False,
    ) -> BatchResult:
        """
        Process every path and return the per-path outcomes in input order.

        Raises:
            InvalidInputError: empty path list, a missing path, or an output
                path combined with more than one input.
            OutputExistsError: the explicit output path exists and
                ``overwrite`` is not set.
        """
        started = time.monotonic()
        inputs = [Path(p) for p in paths]
        explicit = Path(output_path) if output_path is not None else None
        self._check_preconditions(inputs, explicit, overwrite)

        items: List[BatchItem] = []
        with self.cipher_factory(passphrase) as cipher, TempWorkspace() as workspace:
            for path in inputs:
                item = self._process(path, explicit, cipher, workspace, overwrite, delete_original)
                items.append(item)

        result = BatchResult(elapsed=time.monotonic() - started, items=items)
        logger.info(
            "%s: %d succeeded, %d skipped, %d failed in %.3fs",
            self.verb.capitalize(),
            len(result.succeeded),
            len(result.skipped),
            len(result.failed),
            result.elapsed,
        )
        return result

    def _check_preconditions(self, inputs: List[Path], explicit: Optional[Path], overwrite: bool) -> None:
        if not inputs:
            raise InvalidInputError("You must provide at least one path")
        missing = [str(p) for p in inputs if not _exists(p)]
        if missing:
            raise InvalidInputError("One or more provided paths don't exist", ", ".join(missing))
        if explicit is not None:
            if len(inputs) != 1:
                raise InvalidInputError(
                    "Only one input path can be provided when setting an output path"
                )
            source = inputs[0]
            if source.is_dir() and _is_within(explicit, source):
                raise InvalidInputError(
                    "The output path cannot be inside the input directory", str(explicit)
                )
            if _exists(explicit) and not overwrite:
                raise OutputExistsError(
                    "The specified output path already exists, use overwrite to replace it",
                    str(explicit),
                )

    def _process(
        self,
        path: Path,
        explicit: Optional[Path],
        cipher: StreamCipher,
        workspace: TempWorkspace,
        overwrite: bool,
        delete_original: bool,
    ) -> BatchItem:
        try:
            if path.is_file():
                output = self._process_file(path, explicit, cipher, workspace, overwrite)
            elif path.is_dir():
                output = self._process_directory(path, explicit, cipher, workspace, overwrite)
            else:
                logger.info("Skipping %s: %s", path, UNKNOWN_ENTRY_TYPE)
                return BatchItem.skipped(path)
            if delete_original:
                self._delete_original(path)
        except FencryptionError as e:
            logger.warning("Failed to %s %s: %s", self.verb, path, e)
            return BatchItem.failed(path, e)
        except OSError as e:
            error = wrap_os_error(f"{self.verb} {path}", e)
            logger.warning("Failed to %s %s: %s", self.verb, path, error)
            return BatchItem.failed(path, error)

        logger.debug("%s %s -> %s", self.verb.capitalize(), path, output)
        return BatchItem.success(path, output)

    def _process_file(self, path, explicit, cipher, workspace, overwrite) -> Path:
        raise NotImplementedError

    def _process_directory(self, path, explicit, cipher, workspace, overwrite) -> Path:
        raise NotImplementedError

    def _delete_original(self, path: Path) -> None:
        pass

    def _resolve_output(self, explicit: Optional[Path], default: Path, overwrite: bool) -> Path:
        if explicit is not None:
            return explicit
        if _exists(default) and not overwrite:
            raise OutputExistsError(
                "The output path already exists, use overwrite to replace it", str(default)
            )
        return default

    def _commit(self, produced: Path, dest: Path, overwrite: bool) -> None:
        """Move finished output from the workspace to its final location."""
        try:
            if _exists(dest):
                if not overwrite:
                    raise OutputExistsError("The output path already exists", str(dest))
                _remove_path(dest)
            shutil.move(str(produced), str(dest))
        except OSError as e:
            raise wrap_os_error(f"move output into place at {dest}", e) from e


class BatchEncryptor(BatchProcessor):
    """Encrypt files directly and directories as packs."""

    verb = "encrypt"

    def _process_file(self, path, explicit, cipher, workspace, overwrite) -> Path:
        source = _absolute(path)
        dest = self._resolve_output(explicit, source.with_name(source.name + ENCRYPTED_SUFFIX), overwrite)
        produced = workspace.unique_path()
        cipher.encrypt_file(source, produced)
        self._commit(produced, dest, overwrite)
        return dest

    def _process_directory(self, path, explicit, cipher, workspace, overwrite) -> Path:
        source = _absolute(path)
        dest = self._resolve_output(explicit, source.with_name(source.name + PACK_SUFFIX), overwrite)
        pack_path = workspace.unique_path(PACK_SUFFIX)
        summary = self.codec.create(pack_path, source)
        if summary.skipped:
            logger.warning(
                "%d entr%s in %s were not packed (unsupported type): %s",
                len(summary.skipped),
                "y" if len(summary.skipped) == 1 else "ies",
                path,
                ", ".join(summary.skipped),
            )
        produced = workspace.unique_path()
        try:
            cipher.encrypt_file(pack_path, produced)
        finally:
            pack_path.unlink()
        self._commit(produced, dest, overwrite)
        return dest

    def _delete_original(self, path: Path) -> None:
        # only directories; runs after the encrypted pack is in place
        if path.is_dir() and not path.is_symlink():
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise wrap_os_error(f"remove original directory {path}", e) from e
            logger.info("Removed original directory %s", path)


class BatchDecryptor(BatchProcessor):
    """Decrypt ``.enc`` files and unpack ``.pack`` files."""

    verb = "decrypt"

    def _process_file(self, path, explicit, cipher, workspace, overwrite) -> Path:
        source = _absolute(path)
        plain = workspace.unique_path()

        if source.suffix == PACK_SUFFIX and source.stem:
            dest = self._resolve_output(explicit, source.with_name(source.stem), overwrite)
            cipher.decrypt_file(source, plain)
            unpacked = workspace.unique_path()
            try:
                self.codec.unpack(plain, unpacked)
            finally:
                plain.unlink()
            self._commit(unpacked, dest, overwrite)
            return dest

        if source.suffix == ENCRYPTED_SUFFIX and source.stem:
            default = source.with_name(source.stem)
        else:
            default = source.with_name(source.name + DECRYPTED_SUFFIX)
        dest = self._resolve_output(explicit, default, overwrite)
        cipher.decrypt_file(source, plain)
        self._commit(plain, dest, overwrite)
        return dest

    def _process_directory(self, path, explicit, cipher, workspace, overwrite) -> Path:
        raise InvalidInputError(
            "Directories cannot be decrypted, decrypt the .pack file instead", str(path)
        )

    def _delete_original(self, path: Path) -> None:
        # the encrypted input, once its plaintext is in place
        try:
            path.unlink()
        except OSError as e:
            raise wrap_os_error(f"remove encrypted file {path}", e) from e
        logger.info("Removed encrypted file %s", path)
