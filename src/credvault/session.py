"""Unlocked-vault session.

A :class:`Session` is what :func:`credvault.auth.login` hands back: the vault
key in a wipeable buffer plus the identity needed to scope credential
operations. It is the only authorization token the credential operations
accept. Use it as a context manager so the key is wiped on every exit path::

    with login(store, "alice", passphrase) as session:
        create(store, session, "GitHub", password="...")
"""

from __future__ import annotations

import uuid
import weakref

from .crypto import KEY_SIZE, zeroize
from .errors import AuthenticationError


class Session:
    """Caller-owned holder of an unwrapped vault key."""

    __slots__ = ("username", "user_id", "vault_id", "_key", "_finalizer", "__weakref__")

    def __init__(self, username: str, user_id: uuid.UUID, vault_id: uuid.UUID, vault_key: bytearray) -> None:
        if not isinstance(vault_key, bytearray) or len(vault_key) != KEY_SIZE:
            raise TypeError(f"vault_key must be a {KEY_SIZE}-byte bytearray")
        self.username = username
        self.user_id = user_id
        self.vault_id = vault_id
        # Takes ownership of the buffer; the finalizer wipes it on GC and at exit.
        self._key = vault_key
        self._finalizer = weakref.finalize(self, zeroize, vault_key)

    @property
    def active(self) -> bool:
        return self._finalizer.alive

    def ensure_active(self) -> None:
        if not self._finalizer.alive:
            raise AuthenticationError("Session is closed; log in again.")

    @property
    def vault_key(self) -> bytearray:
        """The live key buffer. Raises once the session is destroyed."""
        self.ensure_active()
        return self._key

    def destroy(self) -> None:
        """Zero the key buffer. Safe to call more than once."""
        self._finalizer()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __repr__(self) -> str:
        state = "active" if self.active else "destroyed"
        return f"Session(username={self.username!r}, vault_id={self.vault_id}, {state})"

    def __reduce__(self):  # noqa: D105
        raise TypeError("Session objects cannot be pickled")

    def __copy__(self):
        raise TypeError("Session objects cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("Session objects cannot be copied")
