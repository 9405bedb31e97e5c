"""credvault — offline, per-user encrypted credential vault."""

from __future__ import annotations

from typing import Optional

__version__ = "0.1.0"


def get_password(name: str, account: str, passphrase: str, field: str = "password") -> Optional[str]:
    """Fetch one secret field from the vault — the one-liner for scripts.

    Opens the database named by ``CREDVAULT_DB`` (or the default location),
    unlocks *account* with *passphrase*, and returns the decrypted *field*
    (``"password"`` or ``"notes"``) of the credential called *name*. The vault
    key is wiped before returning.

    Args:
        name:       Credential name, matched case-insensitively (exact match
                    preferred, otherwise a unique partial match).
        account:    Vault account name.
        passphrase: Master passphrase for *account*.
        field:      ``"password"`` (default) or ``"notes"``.

    Returns:
        The field value, or ``None`` when the credential has no such value.

    Raises:
        KeyError: If *field* is not a secret field.
        credvault.errors.AuthenticationError: Wrong account or passphrase.
        credvault.errors.NotFoundError: No credential (or more than one) matches.

    Example::

        from credvault import get_password

        password = get_password("Snowflake prod", "alice", os.environ["VAULT_PASS"])
    """
    from .auth import login
    from .config import Settings
    from .credentials import find_by_name, get_full
    from .errors import NotFoundError
    from .store import VaultStore

    if field not in ("password", "notes"):
        raise KeyError(f"Field {field!r} is not a secret field. Use 'password' or 'notes'.")

    settings = Settings.from_env()
    with VaultStore(settings.db_path) as store, login(store, account, passphrase, settings.cost) as session:
        matches = find_by_name(store, session, name)
        if len(matches) != 1:
            raise NotFoundError(f"Expected one credential matching {name!r}, found {len(matches)}.")
        return getattr(get_full(store, session, matches[0].id), field)
