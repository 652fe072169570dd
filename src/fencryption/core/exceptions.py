"""
Exceptions for the fencryption core module
This is placed such that there is a general error catcher
"""

from typing import Optional


class FencryptionError(Exception):
    # general container for errors; detail is the optional verbose cause
    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class InvalidInputError(FencryptionError):
    # raised on bad paths, empty keys or conflicting options, before any side effect
    pass


class SourceNotDirectoryError(InvalidInputError):
    # raised when a pack source is not a directory
    pass


class FileSystemError(FencryptionError):
    # raised when a filesystem read/write/create/remove fails
    pass


class CryptoError(FencryptionError):
    # raised when key derivation or the cipher primitive fails
    pass


class InvalidKeyError(CryptoError):
    # raised when no usable key can be derived
    pass


class AuthenticationError(CryptoError):
    # wrong key, corrupted or truncated data
    pass


class MalformedContainerError(FencryptionError):
    # raised when a pack container is structurally inconsistent
    pass


class AlreadyExistsError(FencryptionError):
    # raised when an unpack target already holds data
    pass


class OutputExistsError(FencryptionError):
    # overwrite protection
    pass


class ResealError(FencryptionError):
    # raised by the open-pack workflow, tagged with the failing phase
    def __init__(self, phase, message: str, detail: Optional[str] = None):
        super().__init__(message, detail)
        self.phase = phase


def wrap_os_error(action: str, error: OSError) -> FileSystemError:
    """Build a FileSystemError naming the operation that failed."""
    target = f" ({error.filename})" if getattr(error, "filename", None) else ""
    return FileSystemError(f"Failed to {action}{target}", error.strerror or str(error))
