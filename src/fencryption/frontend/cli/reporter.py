"""Console rendering of core results.

The core returns structured values (BatchResult, exceptions with detail) and
this module decides what reaches the terminal.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from fencryption.core.batch import BatchResult
from fencryption.core.exceptions import FencryptionError, ResealError
from .formatting import human_duration, plural, with_line_start


class Reporter:
    """Prints tagged lines; ``debug`` adds per-item paths and error details."""

    def __init__(self, stream: Optional[TextIO] = None, debug: bool = False):
        self.stream = stream or sys.stdout
        self.debug = debug

    def _print(self, tag: str, message: str) -> None:
        print(with_line_start(message, f"[{tag}]"), file=self.stream)

    def info(self, message: str) -> None:
        self._print("INFO", message)

    def success(self, message: str) -> None:
        self._print("OK", message)

    def error(self, message: str) -> None:
        self._print("ERROR", message)

    def exception(self, error: BaseException) -> None:
        if isinstance(error, FencryptionError):
            message = error.message
            if isinstance(error, ResealError):
                message = f"{message} (during {error.phase.value})"
            self.error(message)
            if self.debug:
                self._print_chain(error)
        else:
            self.error(str(error) or error.__class__.__name__)

    def _print_chain(self, error: FencryptionError) -> None:
        if error.detail:
            self.error(f"    - {error.detail}")
        cause = error.__cause__
        while cause is not None:
            self.error(f"    - caused by {cause.__class__.__name__}: {cause}")
            cause = cause.__cause__

    def batch(self, result: BatchResult, past_verb: str, verb: str) -> None:
        succeeded, skipped, failed = result.succeeded, result.skipped, result.failed

        if succeeded:
            self.success(
                f"{past_verb} {len(succeeded)} {plural(len(succeeded), 'entry', 'entries')} "
                f"in {human_duration(result.elapsed)}"
            )
            if self.debug:
                for item in succeeded:
                    self.success(f"    {item.path} -> {item.output_path}")
        if failed:
            self.error(f"Failed to {verb} {len(failed)} {plural(len(failed), 'entry', 'entries')}")
            for item in failed:
                self.error(f"    {item.path}: {item.error.message}")
                if self.debug and item.error.detail:
                    self.error(f"        - {item.error.detail}")
        if skipped:
            self.info(
                f"{len(skipped)} {plural(len(skipped), 'entry was', 'entries were')} "
                f"skipped (unknown type)"
            )
            if self.debug:
                for item in skipped:
                    self.info(f"    {item.path}")
