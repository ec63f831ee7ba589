"""
Passkey SQLite Credential Store

Durable credential store backed by SQLite:
- WAL mode for concurrent readers
- Primary-key constraint on credential ids for atomic check-and-insert
- Single writer lock shared by all mutations
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite
import structlog

from passkey.errors import DuplicateCredentialError, NotFoundError
from passkey.store.credentials import CredentialStore, generate_user_handle
from passkey.types import AuthenticatorTransport, StoredCredential, User
from passkey.utils import b64url_encode

logger = structlog.get_logger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    handle BLOB PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS credentials (
    credential_id BLOB PRIMARY KEY,
    user_handle BLOB NOT NULL REFERENCES users(handle),
    public_key BLOB NOT NULL,
    sign_count INTEGER NOT NULL,
    transports TEXT NOT NULL DEFAULT '[]',
    created_at REAL NOT NULL,
    last_used_at REAL,
    aaguid TEXT,
    attestation_format TEXT,
    device_type TEXT,
    backed_up INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_credentials_user ON credentials(user_handle);
"""


class SQLiteCredentialStore(CredentialStore):
    """
    Credential store persisted to a SQLite database.

    Args:
        path: Database file, or ``":memory:"``.
        busy_timeout_ms: How long SQLite waits on a locked database.
    """

    def __init__(
        self,
        path: Union[str, Path],
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self._logger = logger.bind(store="sqlite", path=str(self.path))

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        if self._conn is not None:
            return

        if self.path != Path(":memory:"):
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000,
        )
        self._conn.row_factory = aiosqlite.Row

        for pragma in (
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA busy_timeout = {self.busy_timeout_ms}",
            "PRAGMA foreign_keys = ON",
        ):
            await self._conn.execute(pragma)

        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        self._logger.info("SQLite credential store initialized")

    async def shutdown(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            self._logger.info("SQLite credential store closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteCredentialStore is not initialized")
        return self._conn

    @staticmethod
    def _row_to_user(row: Any) -> User:
        return User(
            id=bytes(row["handle"]),
            name=row["name"],
            display_name=row["display_name"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_credential(row: Any) -> StoredCredential:
        return StoredCredential(
            credential_id=bytes(row["credential_id"]),
            public_key=bytes(row["public_key"]),
            sign_count=row["sign_count"],
            user_handle=bytes(row["user_handle"]),
            transports=[AuthenticatorTransport(t) for t in json.loads(row["transports"])],
            created_at=row["created_at"],
            last_used_at=row["last_used_at"],
            aaguid=row["aaguid"],
            attestation_format=row["attestation_format"],
            device_type=row["device_type"],
            backed_up=bool(row["backed_up"]),
        )

    async def _fetch_user(self, query: str, params: tuple) -> Optional[User]:
        cursor = await self.conn.execute(query, params)
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def get_or_create_user(self, name: str) -> User:
        async with self._write_lock:
            user = await self.get_user(name)
            if user is not None:
                return user

            user = User(id=generate_user_handle(), name=name)
            await self.conn.execute(
                "INSERT INTO users (handle, name, display_name, created_at) VALUES (?, ?, ?, ?)",
                (user.id, user.name, user.display_name, user.created_at),
            )
            await self.conn.commit()

        self._logger.info("User created", username=name)
        return user

    async def get_user(self, name: str) -> Optional[User]:
        return await self._fetch_user("SELECT * FROM users WHERE name = ?", (name,))

    async def get_user_by_handle(self, user_handle: bytes) -> Optional[User]:
        return await self._fetch_user("SELECT * FROM users WHERE handle = ?", (user_handle,))

    async def list_credentials(self, user_handle: bytes) -> list[StoredCredential]:
        cursor = await self.conn.execute(
            "SELECT * FROM credentials WHERE user_handle = ? ORDER BY created_at, rowid",
            (user_handle,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_credential(row) for row in rows]

    async def is_credential_id_unique(self, candidate_id: bytes) -> bool:
        cursor = await self.conn.execute(
            "SELECT 1 FROM credentials WHERE credential_id = ?",
            (candidate_id,),
        )
        return await cursor.fetchone() is None

    async def insert_credential(
        self,
        user_handle: bytes,
        credential: StoredCredential,
    ) -> None:
        async with self._write_lock:
            try:
                await self.conn.execute(
                    """
                    INSERT INTO credentials (
                        credential_id, user_handle, public_key, sign_count,
                        transports, created_at, last_used_at, aaguid,
                        attestation_format, device_type, backed_up
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        credential.credential_id,
                        user_handle,
                        credential.public_key,
                        credential.sign_count,
                        json.dumps([t.value for t in credential.transports]),
                        credential.created_at,
                        credential.last_used_at,
                        credential.aaguid,
                        credential.attestation_format,
                        credential.device_type,
                        int(credential.backed_up),
                    ),
                )
                await self.conn.commit()
            except sqlite3.IntegrityError as e:
                await self.conn.rollback()
                if "credentials.credential_id" in str(e):
                    raise DuplicateCredentialError(
                        b64url_encode(credential.credential_id)
                    ) from e
                raise NotFoundError(
                    "Owner user does not exist",
                    {"user_handle": b64url_encode(user_handle)},
                ) from e

        self._logger.info(
            "Credential stored",
            credential_id=b64url_encode(credential.credential_id),
            sign_count=credential.sign_count,
        )

    async def find_credential_by_id(
        self,
        credential_id: bytes,
    ) -> Optional[StoredCredential]:
        cursor = await self.conn.execute(
            "SELECT * FROM credentials WHERE credential_id = ?",
            (credential_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_credential(row) if row else None

    async def update_signature_counter(
        self,
        credential_id: bytes,
        new_count: int,
    ) -> None:
        async with self._write_lock:
            cursor = await self.conn.execute(
                "UPDATE credentials SET sign_count = ?, last_used_at = ? WHERE credential_id = ?",
                (new_count, time.time(), credential_id),
            )
            await self.conn.commit()

        if cursor.rowcount == 0:
            raise NotFoundError(
                "Credential not found",
                {"credential_id": b64url_encode(credential_id)},
            )
