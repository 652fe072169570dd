"""Lightweight logging setup for the CLI."""

import logging
import sys


def configure_logging(level: int = logging.WARNING) -> None:
    # Configure root logger once; log to stderr so command output stays clean.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
