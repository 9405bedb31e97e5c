"""Error taxonomy for credvault.

Every failure the core reports is one of the classes below. Callers branch on
``exc.kind`` (an :class:`ErrorKind`) rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    STORAGE = "storage"


class CredVaultError(Exception):
    """Base class for all credvault errors."""

    kind: ErrorKind
    default_message = "Operation failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(CredVaultError):
    """Bad input; the message is safe to show to the user verbatim."""

    kind = ErrorKind.VALIDATION
    default_message = "Invalid input."


class AuthenticationError(CredVaultError):
    """Wrong username or passphrase. Never says which."""

    kind = ErrorKind.AUTHENTICATION
    default_message = "Invalid username or passphrase."


class NotFoundError(CredVaultError):
    """No such record in the caller's vault."""

    kind = ErrorKind.NOT_FOUND
    default_message = "Credential not found."


class AuthorizationError(NotFoundError):
    """Record exists but belongs to another vault.

    Reported with the same kind and message as :class:`NotFoundError` so the
    caller cannot learn that the record exists.
    """


class IntegrityError(CredVaultError):
    """Ciphertext failed authentication: corruption or tampering."""

    kind = ErrorKind.INTEGRITY
    default_message = "Stored data failed integrity check (corrupted or tampered)."


class StorageError(CredVaultError):
    """The database engine failed. Details are logged, never surfaced."""

    kind = ErrorKind.STORAGE
    default_message = "Storage operation failed."
