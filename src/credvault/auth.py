"""Registration, login and account maintenance.

Unknown usernames and wrong passphrases fail identically: same exception
type, same message, and (via a dummy hash check) similar latency.
"""

from __future__ import annotations

import functools
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from .crypto import DEFAULT_COST, Argon2Cost, hash_password, needs_rehash, upgraded_cost, verify_password
from .envelope import create_vault, rewrap_vault, unwrap_vault
from .errors import AuthenticationError, StorageError, ValidationError
from .models import User, Vault, validate_passphrase, validate_username
from .session import Session
from .store import VaultStore

log = logging.getLogger(__name__)


@functools.lru_cache(maxsize=8)
def _dummy_hash(cost: Argon2Cost) -> bytes:
    return hash_password("credvault-timing-equaliser", cost)


def _authenticate(
    store: VaultStore, username: str, passphrase: str, cost: Optional[Argon2Cost]
) -> User:
    user = store.get_user(username) if username else None
    if user is None:
        verify_password(passphrase, _dummy_hash(cost or DEFAULT_COST))
        log.info("Authentication failed for username=%r", username)
        raise AuthenticationError()
    if not verify_password(passphrase, user.password_hash):
        log.info("Authentication failed for username=%r", username)
        raise AuthenticationError()
    return user


def _vault_of(store: VaultStore, user: User) -> Vault:
    vault = store.get_vault_for_user(user.id)
    if vault is None:
        log.error("User %s has no vault row", user.id)
        raise StorageError()
    return vault


def register(
    store: VaultStore, username: str, passphrase: str, cost: Optional[Argon2Cost] = None
) -> uuid.UUID:
    """Create a user and their vault atomically; returns the new user id."""
    validate_username(username)
    validate_passphrase(passphrase)
    log.info("Registering username=%r", username)

    if store.get_user(username) is not None:
        raise ValidationError("Username is already registered.")

    password_hash = hash_password(passphrase, cost)
    vault_key_cipher, _ = create_vault(passphrase, cost)

    user = User(username=username, password_hash=password_hash)
    vault = Vault(user_id=user.id, vault_key_cipher=vault_key_cipher)
    store.create_user_with_vault(user, vault)

    log.info("Registered username=%r user_id=%s vault_id=%s", username, user.id, vault.id)
    return user.id


def login(
    store: VaultStore, username: str, passphrase: str, cost: Optional[Argon2Cost] = None
) -> Session:
    """Verify credentials and unwrap the vault key into a new :class:`Session`.

    When any parameter of the stored hash is weaker than *cost*, the hash is
    upgraded in place before the vault is unlocked. Stronger stored parameters
    are kept.
    """
    user = _authenticate(store, username, passphrase, cost)

    if needs_rehash(user.password_hash, cost):
        log.info("Upgrading password hash parameters for username=%r", username)
        target = upgraded_cost(user.password_hash, cost)
        store.update_password_hash(user.id, hash_password(passphrase, target), datetime.now(timezone.utc))

    vault = _vault_of(store, user)
    vault_key = unwrap_vault(passphrase, vault.vault_key_cipher)
    log.info("Unlocked vault_id=%s for username=%r", vault.id, username)
    return Session(username=user.username, user_id=user.id, vault_id=vault.id, vault_key=vault_key)


def logout(session: Session) -> None:
    """Wipe the session's key material."""
    session.destroy()
    log.info("Logged out username=%r", session.username)


def change_passphrase(
    store: VaultStore,
    session: Session,
    old_passphrase: str,
    new_passphrase: str,
    cost: Optional[Argon2Cost] = None,
) -> None:
    """Replace the login hash and re-wrap the vault key under *new_passphrase*.

    Credential ciphertexts are untouched; the vault key itself does not change.
    """
    validate_passphrase(new_passphrase)
    session.ensure_active()

    user = _authenticate(store, session.username, old_passphrase, cost)
    vault = _vault_of(store, user)
    if vault.id != session.vault_id:
        raise AuthenticationError()

    vault_key_cipher, _ = rewrap_vault(old_passphrase, new_passphrase, vault.vault_key_cipher, cost)
    store.replace_secrets(
        user.id, hash_password(new_passphrase, cost), vault.id, vault_key_cipher, datetime.now(timezone.utc)
    )
    log.info("Passphrase changed for username=%r", user.username)


def unregister(
    store: VaultStore, username: str, passphrase: str, cost: Optional[Argon2Cost] = None
) -> None:
    """Delete an account; its vault and all credentials go with it."""
    user = _authenticate(store, username, passphrase, cost)
    store.delete_user(user.id)
    log.info("Deleted username=%r user_id=%s", username, user.id)
