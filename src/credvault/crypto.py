"""Cryptographic primitives for credvault.

Password hashing: Argon2id, PHC-encoded (argon2-cffi ``PasswordHasher``).
Key derivation:   Argon2id raw output, 32 bytes, per-vault salt.
Encryption:       AES-256-GCM, 96-bit random nonce per call.
                  Blob layout: nonce (12) || ciphertext || tag (16).
"""

from __future__ import annotations

import ctypes
import logging
import os
from dataclasses import dataclass
from typing import Optional

from argon2 import Parameters, PasswordHasher, extract_parameters
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import IntegrityError, ValidationError

log = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
SALT_SIZE = 16
MIN_SALT_SIZE = 8
MAX_TIME_COST = 64
MAX_MEMORY_COST = 4 * 1024 * 1024  # KiB


@dataclass(frozen=True)
class Argon2Cost:
    """Argon2id cost parameters (memory in KiB)."""

    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 4

    def __post_init__(self) -> None:
        if self.time_cost < 1 or self.parallelism < 1:
            raise ValidationError("Argon2 time cost and parallelism must be at least 1.")
        if self.memory_cost < 8 * self.parallelism:
            raise ValidationError("Argon2 memory cost must be at least 8 KiB per lane.")
        if self.time_cost > MAX_TIME_COST or self.memory_cost > MAX_MEMORY_COST:
            raise ValidationError(
                f"Argon2 cost is capped at time_cost={MAX_TIME_COST}, memory_cost={MAX_MEMORY_COST} KiB."
            )


DEFAULT_COST = Argon2Cost()


# ---------------------------------------------------------------------------
# Password hasher
# ---------------------------------------------------------------------------


def _hasher(cost: Optional[Argon2Cost]) -> PasswordHasher:
    cost = cost or DEFAULT_COST
    return PasswordHasher(
        time_cost=cost.time_cost,
        memory_cost=cost.memory_cost,
        parallelism=cost.parallelism,
        hash_len=32,
        salt_len=SALT_SIZE,
        type=Type.ID,
    )


def hash_password(passphrase: str, cost: Optional[Argon2Cost] = None) -> bytes:
    """Return a self-describing Argon2id hash of *passphrase*."""
    return _hasher(cost).hash(passphrase).encode("ascii")


def verify_password(passphrase: str, password_hash: bytes) -> bool:
    """Check *passphrase* against *password_hash* using its embedded parameters.

    Returns ``False`` for a mismatch and for an unreadable stored hash alike.
    """
    try:
        encoded = password_hash.decode("ascii")
    except UnicodeDecodeError:
        log.warning("Stored password hash is not ASCII; treating as mismatch")
        return False
    try:
        return PasswordHasher().verify(encoded, passphrase)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        log.warning("Stored password hash could not be verified; treating as mismatch")
        return False


def _stored_parameters(password_hash: bytes) -> Optional[Parameters]:
    try:
        params = extract_parameters(password_hash.decode("ascii"))
    except (InvalidHashError, UnicodeDecodeError, ValueError):
        return None
    return params if params.type is Type.ID else None


def stored_cost(password_hash: bytes) -> Optional[Argon2Cost]:
    """Parameters embedded in an Argon2id *password_hash*.

    ``None`` if the hash is unreadable, not Argon2id, or outside the
    :class:`Argon2Cost` limits.
    """
    params = _stored_parameters(password_hash)
    if params is None:
        return None
    try:
        return Argon2Cost(
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
        )
    except ValidationError:
        return None


def needs_rehash(password_hash: bytes, cost: Optional[Argon2Cost] = None) -> bool:
    """True if *password_hash* is weaker than *cost* in any parameter.

    A hash made with stronger parameters is left alone, so a cheaper setting
    never downgrades it. Unreadable or non-Argon2id hashes always qualify.
    """
    cost = cost or DEFAULT_COST
    params = _stored_parameters(password_hash)
    if params is None:
        return True
    return (
        params.time_cost < cost.time_cost
        or params.memory_cost < cost.memory_cost
        or params.parallelism < cost.parallelism
    )


def upgraded_cost(password_hash: bytes, cost: Optional[Argon2Cost] = None) -> Argon2Cost:
    """The per-parameter maximum of *cost* and the parameters of *password_hash*."""
    cost = cost or DEFAULT_COST
    params = _stored_parameters(password_hash)
    if params is None:
        return cost
    return Argon2Cost(
        time_cost=min(max(params.time_cost, cost.time_cost), MAX_TIME_COST),
        memory_cost=min(max(params.memory_cost, cost.memory_cost), MAX_MEMORY_COST),
        parallelism=max(params.parallelism, cost.parallelism),
    )


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def generate_salt(size: int = SALT_SIZE) -> bytes:
    """Return a cryptographically-random salt."""
    return os.urandom(size)


def derive_key(passphrase: str, salt: bytes, cost: Optional[Argon2Cost] = None) -> bytes:
    """Derive a 32-byte AES key from *passphrase* and *salt*."""
    if len(salt) < MIN_SALT_SIZE:
        raise ValidationError(f"Salt must be at least {MIN_SALT_SIZE} bytes.")
    cost = cost or DEFAULT_COST
    return hash_secret_raw(
        secret=passphrase.encode("utf-8"),
        salt=salt,
        time_cost=cost.time_cost,
        memory_cost=cost.memory_cost,
        parallelism=cost.parallelism,
        hash_len=KEY_SIZE,
        type=Type.ID,
    )


def generate_vault_key() -> bytearray:
    """Return a fresh random 256-bit key in a wipeable buffer."""
    return bytearray(os.urandom(KEY_SIZE))


def zeroize(buffer: bytearray) -> None:
    """Overwrite *buffer* with zero bytes in place."""
    size = len(buffer)
    if not size:
        return
    view = (ctypes.c_char * size).from_buffer(buffer)
    ctypes.memset(ctypes.addressof(view), 0, size)
    del view


# ---------------------------------------------------------------------------
# AES-256-GCM
# ---------------------------------------------------------------------------


def seal(key: bytes | bytearray, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
    """Encrypt *plaintext*; returns ``nonce || ciphertext || tag``."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def open_sealed(key: bytes | bytearray, blob: bytes, aad: Optional[bytes] = None) -> bytes:
    """Authenticate and decrypt a :func:`seal` blob.

    Raises :class:`cryptography.exceptions.InvalidTag` on any mismatch,
    including a blob too short to hold a nonce and tag.
    """
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise InvalidTag()
    return AESGCM(key).decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], aad)


# ---------------------------------------------------------------------------
# Field cipher
# ---------------------------------------------------------------------------


def encrypt_field(vault_key: bytes | bytearray, plaintext: str, aad: Optional[bytes] = None) -> bytes:
    """Encrypt one credential field under the vault key."""
    if not isinstance(plaintext, str):
        raise TypeError("field plaintext must be str")
    return seal(vault_key, plaintext.encode("utf-8"), aad)


def decrypt_field(vault_key: bytes | bytearray, blob: bytes, aad: Optional[bytes] = None) -> str:
    """Decrypt one credential field; raises :class:`IntegrityError` on failure."""
    try:
        return open_sealed(vault_key, bytes(blob), aad).decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as exc:
        raise IntegrityError() from exc


def encrypt_optional(
    vault_key: bytes | bytearray, plaintext: Optional[str], aad: Optional[bytes] = None
) -> Optional[bytes]:
    """Like :func:`encrypt_field` but passes ``None`` through unencrypted."""
    if plaintext is None:
        return None
    return encrypt_field(vault_key, plaintext, aad)


def decrypt_optional(
    vault_key: bytes | bytearray, blob: Optional[bytes], aad: Optional[bytes] = None
) -> Optional[str]:
    if blob is None:
        return None
    return decrypt_field(vault_key, blob, aad)
