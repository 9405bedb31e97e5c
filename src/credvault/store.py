"""SQLite persistence for users, vaults and credentials.

Tables
------
user        (id, username UNIQUE, password_hash, created_at, updated_at)
vault       (id, user_id -> user.id, vault_key_cipher, created_at, updated_at)
credential  (id, vault_id -> vault.id, name, username, url, notes,
             password_cipher, created_at, updated_at)

Foreign keys cascade on delete. IDs are 16-byte UUID blobs and timestamps are
ISO-8601 UTC text. Every statement is parameterized.

Each thread gets its own connection, and :meth:`VaultStore.close` closes them
all. The database runs in WAL mode so readers never wait on each other;
writers are serialized by a lock.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageError, ValidationError
from .models import Credential, CredentialSummary, User, Vault

log = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS user
(
    id            BLOB PRIMARY KEY,
    username      TEXT UNIQUE NOT NULL,
    password_hash BLOB        NOT NULL,
    created_at    TEXT        NOT NULL,
    updated_at    TEXT        NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_username ON user (username);

CREATE TABLE IF NOT EXISTS vault
(
    id               BLOB PRIMARY KEY,
    user_id          BLOB NOT NULL,
    vault_key_cipher BLOB NOT NULL,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES user (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_vault_user ON vault (user_id);

CREATE TABLE IF NOT EXISTS credential
(
    id              BLOB PRIMARY KEY,
    vault_id        BLOB NOT NULL,
    name            TEXT NOT NULL,
    username        TEXT,
    url             TEXT,
    notes           BLOB,
    password_cipher BLOB,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    FOREIGN KEY (vault_id) REFERENCES vault (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_credential_vault ON credential (vault_id);
CREATE INDEX IF NOT EXISTS idx_credential_name ON credential (name);
"""

_CREDENTIAL_COLUMNS = (
    "id, vault_id, name, username, url, notes, password_cipher, created_at, updated_at"
)
_SUMMARY_COLUMNS = "id, name, username, url, updated_at"

BUSY_TIMEOUT_MS = 5000


class VaultStore:
    """Reads and writes the credvault database file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def init(self) -> None:
        """Create the database file and schema if missing."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fresh = not self.path.exists()
        with self._guard("initialise database"):
            conn = self._conn()
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
        if fresh:
            log.info("Created database at %s", self.path)
        # Restrict permissions: owner read/write only
        os.chmod(self.path, 0o600)
        self._initialized = True

    def close(self) -> None:
        """Close every connection this store opened."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()

    def __enter__(self) -> "VaultStore":
        self.init()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Users & vaults
    # ------------------------------------------------------------------

    def create_user_with_vault(self, user: User, vault: Vault) -> None:
        """Insert *user* and *vault* in one transaction."""
        with self._write("register user") as conn:
            try:
                conn.execute(
                    "INSERT INTO user (id, username, password_hash, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?)",
                    (user.id.bytes, user.username, user.password_hash,
                     _ts(user.created_at), _ts(user.updated_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValidationError("Username is already registered.") from exc
            conn.execute(
                "INSERT INTO vault (id, user_id, vault_key_cipher, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (vault.id.bytes, vault.user_id.bytes, vault.vault_key_cipher,
                 _ts(vault.created_at), _ts(vault.updated_at)),
            )

    def get_user(self, username: str) -> Optional[User]:
        with self._read("load user") as conn:
            row = conn.execute(
                "SELECT id, username, password_hash, created_at, updated_at"
                " FROM user WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            return None
        return User(
            id=_uuid(row[0]),
            username=row[1],
            password_hash=bytes(row[2]),
            created_at=_dt(row[3]),
            updated_at=_dt(row[4]),
        )

    def get_vault_for_user(self, user_id: uuid.UUID) -> Optional[Vault]:
        with self._read("load vault") as conn:
            row = conn.execute(
                "SELECT id, user_id, vault_key_cipher, created_at, updated_at"
                " FROM vault WHERE user_id = ?",
                (user_id.bytes,),
            ).fetchone()
        if row is None:
            return None
        return Vault(
            id=_uuid(row[0]),
            user_id=_uuid(row[1]),
            vault_key_cipher=bytes(row[2]),
            created_at=_dt(row[3]),
            updated_at=_dt(row[4]),
        )

    def update_password_hash(self, user_id: uuid.UUID, password_hash: bytes, when: datetime) -> None:
        with self._write("update password hash") as conn:
            conn.execute(
                "UPDATE user SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, _ts(when), user_id.bytes),
            )

    def replace_secrets(
        self,
        user_id: uuid.UUID,
        password_hash: bytes,
        vault_id: uuid.UUID,
        vault_key_cipher: bytes,
        when: datetime,
    ) -> None:
        """Swap the password hash and wrapped vault key in one transaction."""
        with self._write("change passphrase") as conn:
            conn.execute(
                "UPDATE user SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, _ts(when), user_id.bytes),
            )
            conn.execute(
                "UPDATE vault SET vault_key_cipher = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (vault_key_cipher, _ts(when), vault_id.bytes, user_id.bytes),
            )

    def delete_user(self, user_id: uuid.UUID) -> bool:
        """Delete a user; its vault and credentials cascade."""
        with self._write("delete user") as conn:
            cur = conn.execute("DELETE FROM user WHERE id = ?", (user_id.bytes,))
        return cur.rowcount > 0

    def delete_vault(self, vault_id: uuid.UUID) -> bool:
        """Delete a vault; its credentials cascade."""
        with self._write("delete vault") as conn:
            cur = conn.execute("DELETE FROM vault WHERE id = ?", (vault_id.bytes,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def insert_credential(self, cred: Credential) -> None:
        with self._write("create credential") as conn:
            conn.execute(
                f"INSERT INTO credential ({_CREDENTIAL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _credential_params(cred),
            )

    def get_credential(self, credential_id: uuid.UUID) -> Optional[Credential]:
        """Load a credential by id regardless of vault; callers check ownership."""
        with self._read("load credential") as conn:
            row = conn.execute(
                f"SELECT {_CREDENTIAL_COLUMNS} FROM credential WHERE id = ?",
                (credential_id.bytes,),
            ).fetchone()
        return None if row is None else _credential_from_row(row)

    def list_summaries(self, vault_id: uuid.UUID) -> list[CredentialSummary]:
        """Return summaries for *vault_id*, ordered by name."""
        with self._read("list credentials") as conn:
            rows = conn.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM credential WHERE vault_id = ?"
                " ORDER BY name COLLATE NOCASE ASC, created_at ASC",
                (vault_id.bytes,),
            ).fetchall()
        return [
            CredentialSummary(
                id=_uuid(r[0]), name=r[1], username=r[2], url=r[3], updated_at=_dt(r[4])
            )
            for r in rows
        ]

    def count_credentials(self, vault_id: uuid.UUID) -> int:
        with self._read("count credentials") as conn:
            (count,) = conn.execute(
                "SELECT COUNT(*) FROM credential WHERE vault_id = ?", (vault_id.bytes,)
            ).fetchone()
        return count

    def update_credential(self, cred: Credential) -> bool:
        with self._write("update credential") as conn:
            cur = conn.execute(
                "UPDATE credential SET name = ?, username = ?, url = ?, notes = ?,"
                " password_cipher = ?, updated_at = ? WHERE id = ? AND vault_id = ?",
                (cred.name, cred.username, cred.url, cred.notes, cred.password_cipher,
                 _ts(cred.updated_at), cred.id.bytes, cred.vault_id.bytes),
            )
        return cur.rowcount > 0

    def delete_credential(self, credential_id: uuid.UUID, vault_id: uuid.UUID) -> bool:
        with self._write("delete credential") as conn:
            cur = conn.execute(
                "DELETE FROM credential WHERE id = ? AND vault_id = ?",
                (credential_id.bytes, vault_id.bytes),
            )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path, timeout=BUSY_TIMEOUT_MS / 1000, check_same_thread=False)
            try:
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
            except sqlite3.Error:
                conn.close()
                raise
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        """Translate engine failures into :class:`StorageError`."""
        try:
            yield
        except sqlite3.Error as exc:
            log.exception("Database failure during %s", action)
            raise StorageError() from exc

    @contextmanager
    def _read(self, action: str) -> Iterator[sqlite3.Connection]:
        if not self._initialized:
            self.init()
        with self._guard(action):
            yield self._conn()

    @contextmanager
    def _write(self, action: str) -> Iterator[sqlite3.Connection]:
        """Serialized write transaction; commits on success, rolls back on error."""
        if not self._initialized:
            self.init()
        with self._write_lock, self._guard(action):
            conn = self._conn()
            with conn:
                yield conn


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _ts(value: datetime) -> str:
    return value.isoformat()


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _uuid(value: bytes) -> uuid.UUID:
    return uuid.UUID(bytes=bytes(value))


def _blob(value: Optional[bytes]) -> Optional[bytes]:
    return None if value is None else bytes(value)


def _credential_params(cred: Credential) -> tuple:
    return (
        cred.id.bytes,
        cred.vault_id.bytes,
        cred.name,
        cred.username,
        cred.url,
        cred.notes,
        cred.password_cipher,
        _ts(cred.created_at),
        _ts(cred.updated_at),
    )


def _credential_from_row(row: tuple) -> Credential:
    return Credential(
        id=_uuid(row[0]),
        vault_id=_uuid(row[1]),
        name=row[2],
        username=row[3],
        url=row[4],
        notes=_blob(row[5]),
        password_cipher=_blob(row[6]),
        created_at=_dt(row[7]),
        updated_at=_dt(row[8]),
    )
