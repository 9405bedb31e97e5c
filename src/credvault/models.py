"""Domain models for credvault."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

USERNAME_MIN = 3
USERNAME_MAX = 32
NAME_MAX = 64

_USERNAME_RE = re.compile(r"[A-Za-z0-9_.-]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> uuid.UUID:
    return uuid.uuid4()


class User(BaseModel):
    """A registered account. ``password_hash`` is only ever verified."""

    id: uuid.UUID = Field(default_factory=_new_id)
    username: str
    password_hash: bytes = Field(repr=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Vault(BaseModel):
    """One per user; holds the wrapped vault key."""

    id: uuid.UUID = Field(default_factory=_new_id)
    user_id: uuid.UUID
    vault_key_cipher: bytes = Field(repr=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CredentialSummary(BaseModel):
    """Non-secret view of a credential, safe to list and display."""

    id: uuid.UUID
    name: str
    username: Optional[str] = None
    url: Optional[str] = None
    updated_at: datetime


class CredentialDetail(CredentialSummary):
    """A credential with its secret fields decrypted."""

    password: Optional[str] = Field(default=None, repr=False)
    notes: Optional[str] = Field(default=None, repr=False)
    created_at: datetime


class Credential(BaseModel):
    """A stored credential row; secret fields hold ciphertext blobs."""

    id: uuid.UUID = Field(default_factory=_new_id)
    vault_id: uuid.UUID
    name: str
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[bytes] = Field(default=None, repr=False)
    password_cipher: Optional[bytes] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def touch(self) -> None:
        """Update *updated_at* to now."""
        self.updated_at = _utcnow()

    def field_aad(self, field: str) -> bytes:
        """Associated data binding a ciphertext to this row and field."""
        return f"{self.id}:{field}".encode("ascii")

    def summary(self) -> CredentialSummary:
        return CredentialSummary(
            id=self.id,
            name=self.name,
            username=self.username,
            url=self.url,
            updated_at=self.updated_at,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_username(username: str) -> str:
    if not username or not username.strip():
        raise ValidationError("Username cannot be empty.")
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise ValidationError(f"Username must be {USERNAME_MIN}-{USERNAME_MAX} characters long.")
    if not _USERNAME_RE.fullmatch(username):
        raise ValidationError("Username may only contain letters, digits, '.', '_' and '-'.")
    return username


def validate_passphrase(passphrase: str) -> str:
    if not passphrase:
        raise ValidationError("Passphrase cannot be empty.")
    return passphrase


def validate_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Credential name cannot be empty.")
    if len(name) > NAME_MAX:
        raise ValidationError(f"Credential name cannot exceed {NAME_MAX} characters.")
    return name
