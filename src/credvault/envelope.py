"""Vault key envelope: the random vault key wrapped under a passphrase.

Binary blob format
------------------
Offset  Length  Content
0       4       Magic bytes b"CVKE"
4       1       Format version (uint8)
5       4       Argon2 time cost (big-endian uint32)
9       4       Argon2 memory cost in KiB (big-endian uint32)
13      1       Argon2 parallelism (uint8)
14      1       Salt length in bytes (uint8)
15      N       Wrap salt
15+N    …       AES-256-GCM nonce || ciphertext || tag of the vault key

The header (everything before the nonce) is authenticated as associated data,
so a blob whose cost parameters or salt were edited fails to unwrap.
"""

from __future__ import annotations

import logging
import struct
from typing import NamedTuple, Optional

from cryptography.exceptions import InvalidTag

from .crypto import (
    KEY_SIZE,
    MAX_MEMORY_COST,
    MAX_TIME_COST,
    MIN_SALT_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    Argon2Cost,
    derive_key,
    generate_salt,
    generate_vault_key,
    open_sealed,
    seal,
    zeroize,
)
from .errors import AuthenticationError, ValidationError

log = logging.getLogger(__name__)

_MAGIC = b"CVKE"
_FORMAT_VERSION = 1
_HEADER = struct.Struct(">4sBIIBB")


class Envelope(NamedTuple):
    """A parsed envelope blob."""

    header: bytes
    cost: Argon2Cost
    salt: bytes
    sealed: bytes


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_vault(passphrase: str, cost: Optional[Argon2Cost] = None) -> tuple[bytes, bytes]:
    """Generate a new vault key and wrap it under *passphrase*.

    Returns *(vault_key_cipher, wrap_salt)*. The plaintext key is wiped before
    returning; the salt is also embedded in the blob.
    """
    vault_key = generate_vault_key()
    try:
        return wrap_vault_key(passphrase, vault_key, cost)
    finally:
        zeroize(vault_key)


def wrap_vault_key(
    passphrase: str, vault_key: bytes | bytearray, cost: Optional[Argon2Cost] = None
) -> tuple[bytes, bytes]:
    """Wrap an existing *vault_key* under a fresh salt and nonce."""
    if len(vault_key) != KEY_SIZE:
        raise ValidationError(f"Vault key must be {KEY_SIZE} bytes.")
    cost = cost or Argon2Cost()
    salt = generate_salt()
    header = _pack_header(cost, salt)

    wrapping_key = bytearray(derive_key(passphrase, salt, cost))
    try:
        sealed = seal(wrapping_key, bytes(vault_key), aad=header)
    finally:
        zeroize(wrapping_key)
    return header + sealed, salt


def unwrap_vault(
    passphrase: str, vault_key_cipher: bytes, wrap_salt: Optional[bytes] = None
) -> bytearray:
    """Recover the vault key; the caller owns (and must wipe) the result.

    Any failure (wrong passphrase, tampering, truncation, a *wrap_salt* that
    differs from the embedded one) raises :class:`AuthenticationError`.
    """
    envelope = parse(vault_key_cipher)
    if wrap_salt is not None and wrap_salt != envelope.salt:
        log.debug("Wrap salt does not match envelope header")
        raise AuthenticationError()

    wrapping_key = bytearray(derive_key(passphrase, envelope.salt, envelope.cost))
    try:
        plain = open_sealed(wrapping_key, envelope.sealed, aad=envelope.header)
    except InvalidTag as exc:
        raise AuthenticationError() from exc
    finally:
        zeroize(wrapping_key)

    vault_key = bytearray(plain)
    del plain
    if len(vault_key) != KEY_SIZE:
        zeroize(vault_key)
        raise AuthenticationError()
    return vault_key


def rewrap_vault(
    old_passphrase: str,
    new_passphrase: str,
    vault_key_cipher: bytes,
    cost: Optional[Argon2Cost] = None,
) -> tuple[bytes, bytes]:
    """Re-wrap the same vault key under *new_passphrase*.

    Credential ciphertexts stay valid because the vault key is unchanged.
    """
    vault_key = unwrap_vault(old_passphrase, vault_key_cipher)
    try:
        return wrap_vault_key(new_passphrase, vault_key, cost)
    finally:
        zeroize(vault_key)


def parse(data: bytes) -> Envelope:
    """Split an envelope blob into header fields and sealed key."""
    if len(data) < _HEADER.size or not data.startswith(_MAGIC):
        log.debug("Envelope too short or bad magic")
        raise AuthenticationError()

    _, fmt_ver, time_cost, memory_cost, parallelism, salt_len = _HEADER.unpack_from(data, 0)
    if fmt_ver != _FORMAT_VERSION:
        log.warning("Unsupported envelope format version %d", fmt_ver)
        raise AuthenticationError()

    offset = _HEADER.size
    salt = data[offset : offset + salt_len]
    offset += salt_len
    sealed = data[offset:]

    if len(salt) != salt_len or len(sealed) != NONCE_SIZE + KEY_SIZE + TAG_SIZE:
        log.debug("Envelope truncated or corrupt")
        raise AuthenticationError()

    # The header is only authenticated after key derivation, so bound the work first.
    if salt_len < MIN_SALT_SIZE or time_cost > MAX_TIME_COST or memory_cost > MAX_MEMORY_COST:
        log.warning("Envelope cost parameters out of range")
        raise AuthenticationError()
    try:
        cost = Argon2Cost(time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)
    except ValidationError as exc:
        raise AuthenticationError() from exc

    return Envelope(header=data[:offset], cost=cost, salt=salt, sealed=sealed)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _pack_header(cost: Argon2Cost, salt: bytes) -> bytes:
    if cost.parallelism > 0xFF or len(salt) > 0xFF:
        raise ValidationError("Argon2 parallelism and salt length must fit in one byte.")
    return _HEADER.pack(
        _MAGIC, _FORMAT_VERSION, cost.time_cost, cost.memory_cost, cost.parallelism, len(salt)
    ) + salt
