"""Credential operations scoped to an unlocked :class:`~credvault.session.Session`.

Secret fields (password, notes) are encrypted with the session's vault key and
bound to their row and field name. Plaintext fields (name, username, url) stay
searchable without decryption.

A credential that lives in another vault is reported exactly like one that
does not exist.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Union

from .crypto import decrypt_optional, encrypt_optional
from .errors import AuthorizationError, NotFoundError
from .models import Credential, CredentialDetail, CredentialSummary, validate_name
from .session import Session
from .store import VaultStore

log = logging.getLogger(__name__)

PASSWORD = "password"
NOTES = "notes"


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


#: Default for :func:`update` arguments that should leave a field unchanged.
UNSET: Any = _Unset()

CredentialId = Union[uuid.UUID, str]


def create(
    store: VaultStore,
    session: Session,
    name: str,
    username: Optional[str] = None,
    url: Optional[str] = None,
    password: Optional[str] = None,
    notes: Optional[str] = None,
) -> CredentialSummary:
    """Store a new credential and return its summary."""
    key = session.vault_key
    validate_name(name)

    cred = Credential(vault_id=session.vault_id, name=name, username=username, url=url)
    cred.password_cipher = encrypt_optional(key, password, cred.field_aad(PASSWORD))
    cred.notes = encrypt_optional(key, notes, cred.field_aad(NOTES))
    store.insert_credential(cred)

    log.info("Created credential id=%s in vault_id=%s", cred.id, session.vault_id)
    return cred.summary()


def list_credentials(store: VaultStore, session: Session) -> list[CredentialSummary]:
    """All credentials in the session's vault, by name. Nothing is decrypted."""
    session.ensure_active()
    return store.list_summaries(session.vault_id)


def search(store: VaultStore, session: Session, query: str) -> list[CredentialSummary]:
    """Case-insensitive substring match on name, username and URL."""
    summaries = list_credentials(store, session)
    q = (query or "").strip().casefold()
    if not q:
        return summaries
    return [
        s
        for s in summaries
        if q in s.name.casefold()
        or (s.username and q in s.username.casefold())
        or (s.url and q in s.url.casefold())
    ]


def find_by_name(store: VaultStore, session: Session, name: str) -> list[CredentialSummary]:
    """Credentials named *name* (case-insensitive), else those whose name contains it."""
    wanted = (name or "").strip().casefold()
    candidates = [s for s in search(store, session, wanted) if wanted in s.name.casefold()]
    exact = [s for s in candidates if s.name.casefold() == wanted]
    return exact or candidates


def get_full(store: VaultStore, session: Session, credential_id: CredentialId) -> CredentialDetail:
    """Load one credential and decrypt its secret fields.

    Raises :class:`NotFoundError` for missing or foreign ids and
    :class:`~credvault.errors.IntegrityError` if a ciphertext was tampered with.
    """
    key = session.vault_key
    cred = _owned(store, session, credential_id)
    log.debug("Decrypting credential id=%s", cred.id)
    return CredentialDetail(
        id=cred.id,
        name=cred.name,
        username=cred.username,
        url=cred.url,
        password=decrypt_optional(key, cred.password_cipher, cred.field_aad(PASSWORD)),
        notes=decrypt_optional(key, cred.notes, cred.field_aad(NOTES)),
        created_at=cred.created_at,
        updated_at=cred.updated_at,
    )


def update(
    store: VaultStore,
    session: Session,
    credential_id: CredentialId,
    name: str = UNSET,
    username: Optional[str] = UNSET,
    url: Optional[str] = UNSET,
    password: Optional[str] = UNSET,
    notes: Optional[str] = UNSET,
) -> CredentialSummary:
    """Change fields of a credential.

    Arguments left as :data:`UNSET` keep their value; ``None`` clears an
    optional field. Every supplied secret is encrypted afresh with a new nonce.
    """
    key = session.vault_key
    cred = _owned(store, session, credential_id)

    if name is not UNSET:
        cred.name = validate_name(name)
    if username is not UNSET:
        cred.username = username
    if url is not UNSET:
        cred.url = url
    if password is not UNSET:
        cred.password_cipher = encrypt_optional(key, password, cred.field_aad(PASSWORD))
    if notes is not UNSET:
        cred.notes = encrypt_optional(key, notes, cred.field_aad(NOTES))

    cred.touch()
    if not store.update_credential(cred):
        raise NotFoundError()
    log.info("Updated credential id=%s", cred.id)
    return cred.summary()


def delete(store: VaultStore, session: Session, credential_id: CredentialId) -> None:
    """Remove a credential from the session's vault."""
    session.ensure_active()
    cred = _owned(store, session, credential_id)
    if not store.delete_credential(cred.id, session.vault_id):
        raise NotFoundError()
    log.info("Deleted credential id=%s", cred.id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _owned(store: VaultStore, session: Session, credential_id: CredentialId) -> Credential:
    """Fetch *credential_id* if it belongs to the session's vault."""
    if not isinstance(credential_id, uuid.UUID):
        try:
            credential_id = uuid.UUID(str(credential_id))
        except ValueError as exc:
            raise NotFoundError() from exc

    cred = store.get_credential(credential_id)
    if cred is None:
        raise NotFoundError()
    if cred.vault_id != session.vault_id:
        log.warning(
            "vault_id=%s asked for credential id=%s owned by another vault",
            session.vault_id,
            credential_id,
        )
        raise AuthorizationError()
    return cred
