"""
Pack container: one file holding a whole directory tree.

Layout (binary, all big-endian):
==============================
 - 4 bytes: magic b'FPK1'
 - 1 byte: version (1)
 - 2 bytes: root name length (N) + N bytes: UTF-8 root directory name
 - entries, each:
      - 1 byte: kind (1 = directory, 2 = file, 0 = end marker)
      - 2 bytes: path length (P) + P bytes: UTF-8 POSIX path relative to the root
      - files only: 8 bytes: size (S) + S bytes: content
 - 1 byte: end marker (0)
==============================
Entries are written in pre-order with children sorted by name, so every entry's
parent directory appears before it. The root directory itself has no entry; its
name is kept in the header and the caller chooses where to unpack.

Symlinks and special files are not stored; they are reported as skipped.
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Set, Union

from fencryption.config import get_settings
from .exceptions import (
    AlreadyExistsError,
    FencryptionError,
    FileSystemError,
    InvalidInputError,
    MalformedContainerError,
    SourceNotDirectoryError,
    wrap_os_error,
)


logger = logging.getLogger(__name__)

MAGIC = b"FPK1"
VERSION = 1
KIND_END = 0
KIND_DIR = 1
KIND_FILE = 2
MAX_PATH_LEN = 0xFFFF
# keeps non-UTF-8 POSIX file names round-trippable
PATH_ERRORS = "surrogateescape"


@dataclass
class PackSummary:
    """Counts gathered while creating or unpacking a container."""

    root_name: str = ""
    files: int = 0
    directories: int = 0
    total_bytes: int = 0
    skipped: List[str] = field(default_factory=list)


def _encode_path(rel: str) -> bytes:
    raw = rel.encode("utf-8", PATH_ERRORS)
    if len(raw) > MAX_PATH_LEN:
        raise InvalidInputError("Path too long to pack", rel)
    return raw


def _read_exact(source: BinaryIO, size: int, what: str) -> bytes:
    data = source.read(size)
    if len(data) != size:
        raise MalformedContainerError("Pack is truncated", f"short read in {what}")
    return data


class PackCodec:
    """Serialize a directory tree to one container file and back."""

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = get_settings().chunk_size if chunk_size is None else chunk_size
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, container_path: Union[str, Path], source_directory: Union[str, Path]) -> PackSummary:
        """
        Write a new container at ``container_path`` holding ``source_directory``.

        The container path must not exist yet. On any failure the partially
        written container is removed and the error is raised.
        """
        source = Path(source_directory)
        if not source.is_dir():
            raise SourceNotDirectoryError("The path must lead to a directory", str(source))

        container = Path(container_path)
        summary = PackSummary(root_name=source.resolve().name)
        created = False
        try:
            with open(container, "xb") as out:
                created = True
                name = _encode_path(summary.root_name)
                out.write(MAGIC)
                out.write(struct.pack("B", VERSION))
                out.write(struct.pack(">H", len(name)))
                out.write(name)
                self._write_tree(out, source, PurePosixPath(), summary)
                out.write(struct.pack("B", KIND_END))
        except OSError as e:
            _discard_file(container, created)
            raise wrap_os_error(f"create pack from {source}", e) from e
        except FencryptionError:
            _discard_file(container, created)
            raise

        logger.info(
            "Packed %s: %d file(s), %d dir(s), %d skipped",
            source,
            summary.files,
            summary.directories,
            len(summary.skipped),
        )
        return summary

    def _write_tree(self, out: BinaryIO, directory: Path, rel: PurePosixPath, summary: PackSummary) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            child_rel = rel / entry.name
            if entry.is_symlink():
                summary.skipped.append(child_rel.as_posix())
                logger.debug("Skipping symlink %s", entry.path)
            elif entry.is_dir(follow_symlinks=False):
                self._write_entry_header(out, KIND_DIR, child_rel)
                summary.directories += 1
                self._write_tree(out, Path(entry.path), child_rel, summary)
            elif entry.is_file(follow_symlinks=False):
                self._write_entry_header(out, KIND_FILE, child_rel)
                summary.total_bytes += self._write_file(out, Path(entry.path))
                summary.files += 1
            else:
                summary.skipped.append(child_rel.as_posix())
                logger.debug("Skipping unknown entry type %s", entry.path)

    def _write_entry_header(self, out: BinaryIO, kind: int, rel: PurePosixPath) -> None:
        raw = _encode_path(rel.as_posix())
        out.write(struct.pack("B", kind))
        out.write(struct.pack(">H", len(raw)))
        out.write(raw)

    def _write_file(self, out: BinaryIO, path: Path) -> int:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            out.write(struct.pack(">Q", size))
            remaining = size
            while remaining:
                data = f.read(min(self.chunk_size, remaining))
                if not data:
                    raise FileSystemError("File changed while packing", str(path))
                out.write(data)
                remaining -= len(data)
        return size

    # ------------------------------------------------------------------
    # Unpack
    # ------------------------------------------------------------------

    def read_root_name(self, container_path: Union[str, Path]) -> str:
        """Return the name of the directory the container was created from."""
        try:
            with open(container_path, "rb") as f:
                return self._read_header(f)
        except OSError as e:
            raise wrap_os_error(f"read pack {container_path}", e) from e

    def unpack(
        self,
        container_path: Union[str, Path],
        target_directory: Union[str, Path],
        overwrite: bool = False,
    ) -> PackSummary:
        """
        Recreate the packed tree under ``target_directory``.

        The target is created if absent. An existing non-empty target raises
        :class:`AlreadyExistsError` unless ``overwrite`` is set, in which case
        it is replaced. When unpacking fails, whatever was created is removed.
        """
        container = Path(container_path)
        target = Path(target_directory)
        created_target = self._prepare_target(target, overwrite)

        summary = PackSummary()
        try:
            with open(container, "rb") as f:
                summary.root_name = self._read_header(f)
                self._read_entries(f, target, summary)
        except OSError as e:
            self._rollback(target, created_target)
            raise wrap_os_error(f"unpack {container}", e) from e
        except FencryptionError:
            self._rollback(target, created_target)
            raise

        logger.info("Unpacked %s into %s: %d file(s)", container, target, summary.files)
        return summary

    def _prepare_target(self, target: Path, overwrite: bool) -> bool:
        try:
            if target.is_symlink() or target.exists():
                if target.is_dir() and not target.is_symlink():
                    if not any(target.iterdir()):
                        return False
                    if not overwrite:
                        raise AlreadyExistsError(
                            "The output directory already exists and is not empty", str(target)
                        )
                    shutil.rmtree(target)
                else:
                    if not overwrite:
                        raise AlreadyExistsError("The output path already exists", str(target))
                    target.unlink()
            target.mkdir(parents=True)
        except OSError as e:
            raise wrap_os_error(f"prepare output directory {target}", e) from e
        return True

    def _rollback(self, target: Path, created_target: bool) -> None:
        try:
            if created_target:
                shutil.rmtree(target)
                return
            for child in target.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clean up partial unpack in %s: %s", target, e)

    def _read_header(self, f: BinaryIO) -> str:
        if f.read(4) != MAGIC:
            raise MalformedContainerError("Not a pack file (magic mismatch)")
        ver = ord(_read_exact(f, 1, "version"))
        if ver != VERSION:
            raise MalformedContainerError("Unsupported pack version", str(ver))
        (name_len,) = struct.unpack(">H", _read_exact(f, 2, "root name length"))
        return _read_exact(f, name_len, "root name").decode("utf-8", PATH_ERRORS)

    def _read_entries(self, f: BinaryIO, target: Path, summary: PackSummary) -> None:
        directories: Set[PurePosixPath] = {PurePosixPath(".")}
        seen: Set[PurePosixPath] = set()
        while True:
            kind_byte = f.read(1)
            if not kind_byte:
                raise MalformedContainerError("Pack is truncated", "missing end marker")
            kind = kind_byte[0]
            if kind == KIND_END:
                break
            if kind not in (KIND_DIR, KIND_FILE):
                raise MalformedContainerError("Unknown entry kind in pack", str(kind))

            rel = self._read_entry_path(f)
            if rel in seen:
                raise MalformedContainerError("Duplicate entry in pack", rel.as_posix())
            if rel.parent not in directories:
                raise MalformedContainerError("Entry appears before its parent directory", rel.as_posix())
            seen.add(rel)

            dest = target.joinpath(*rel.parts)
            if kind == KIND_DIR:
                dest.mkdir()
                directories.add(rel)
                summary.directories += 1
            else:
                (size,) = struct.unpack(">Q", _read_exact(f, 8, f"size of {rel}"))
                self._read_file(f, dest, size, rel)
                summary.files += 1
                summary.total_bytes += size

        if f.read(1):
            raise MalformedContainerError("Unexpected data after end of pack")

    def _read_entry_path(self, f: BinaryIO) -> PurePosixPath:
        (path_len,) = struct.unpack(">H", _read_exact(f, 2, "path length"))
        raw = _read_exact(f, path_len, "path").decode("utf-8", PATH_ERRORS)
        parts = raw.split("/")
        if not raw or any(p in ("", ".", "..") or "\x00" in p for p in parts):
            raise MalformedContainerError("Unsafe path in pack", repr(raw))
        return PurePosixPath(*parts)

    def _read_file(self, f: BinaryIO, dest: Path, size: int, rel: PurePosixPath) -> None:
        with open(dest, "xb") as out:
            remaining = size
            while remaining:
                data = f.read(min(self.chunk_size, remaining))
                if not data:
                    raise MalformedContainerError("Pack is truncated", f"content of {rel}")
                out.write(data)
                remaining -= len(data)


def _discard_file(path: Path, created: bool) -> None:
    if not created:
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove partial pack %s: %s", path, e)
