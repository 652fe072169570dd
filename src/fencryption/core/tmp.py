"""Process-scoped temporary workspace."""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Optional, Union

from fencryption.config import get_settings
from .exceptions import wrap_os_error


logger = logging.getLogger(__name__)


class TempWorkspace:
    """
    A private directory in the system temp area, removed when the owner is done.

    Use it as a context manager so the directory is removed on both normal
    exit and error unwind::

        with TempWorkspace() as ws:
            pack_path = ws.unique_path()

    A failure to remove the directory is logged and never replaces an
    exception already in flight.
    """

    def __init__(self, parent: Optional[Union[str, Path]] = None):
        parent = parent if parent is not None else get_settings().tmp_dir
        try:
            self.path = Path(tempfile.mkdtemp(prefix="fencryption-", dir=parent))
        except OSError as e:
            raise wrap_os_error("create temporary directory", e) from e
        self._closed = False
        logger.debug("Created temporary workspace %s", self.path)

    def unique_path(self, suffix: str = "") -> Path:
        """Return a fresh path inside the workspace; nothing is created on disk."""
        if self._closed:
            raise RuntimeError("Workspace already cleaned up")
        return self.path / f"{uuid.uuid4().hex}{suffix}"

    def cleanup(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove temporary workspace %s: %s", self.path, e)
        else:
            logger.debug("Removed temporary workspace %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "TempWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
