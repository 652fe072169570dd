"""Passphrase prompts for the CLI."""

from __future__ import annotations

import getpass

from fencryption.core.exceptions import InvalidInputError


def prompt_passphrase(confirm: bool = False) -> str:
    """Ask for a passphrase without echo; optionally ask again to confirm it."""
    try:
        key = getpass.getpass("Enter key: ")
        if confirm:
            confirm_key = getpass.getpass("Confirm key: ")
            if key != confirm_key:
                raise InvalidInputError("The two keys don't match")
    except (EOFError, OSError) as e:
        raise InvalidInputError("Failed to read key", str(e)) from e

    if len(key) < 1:
        raise InvalidInputError("The key cannot be less than 1 character long")
    return key
