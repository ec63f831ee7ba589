"""
Passkey Credential Store

Per-user identity and registered credentials. The store contract is abstract
so any durable or in-memory backing satisfies it, provided that the
uniqueness check and insertion of a credential happen atomically.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

import structlog

from passkey.errors import DuplicateCredentialError, NotFoundError
from passkey.types import StoredCredential, User
from passkey.utils import b64url_encode

logger = structlog.get_logger(__name__)

USER_HANDLE_BYTES = 16


def generate_user_handle() -> bytes:
    """Fresh opaque user id, stable for the account's lifetime."""
    return secrets.token_bytes(USER_HANDLE_BYTES)


class CredentialStore(ABC):
    """Abstract credential store."""

    async def initialize(self) -> None:
        """Prepare the backing storage."""

    async def shutdown(self) -> None:
        """Release the backing storage."""

    @abstractmethod
    async def get_or_create_user(self, name: str) -> User:
        """Return the user called ``name``, creating it on first use."""

    @abstractmethod
    async def get_user(self, name: str) -> Optional[User]:
        """Return the user called ``name`` without creating it."""

    @abstractmethod
    async def get_user_by_handle(self, user_handle: bytes) -> Optional[User]:
        """Return the user owning ``user_handle``."""

    @abstractmethod
    async def list_credentials(self, user_handle: bytes) -> list[StoredCredential]:
        """Credentials registered to a user, oldest first."""

    @abstractmethod
    async def is_credential_id_unique(self, candidate_id: bytes) -> bool:
        """True if no user holds a credential with this id."""

    @abstractmethod
    async def insert_credential(
        self,
        user_handle: bytes,
        credential: StoredCredential,
    ) -> None:
        """
        Store a new credential for a user.

        Raises:
            DuplicateCredentialError: if the credential id is already taken.
        """

    @abstractmethod
    async def find_credential_by_id(
        self,
        credential_id: bytes,
    ) -> Optional[StoredCredential]:
        """Look up a credential by its authenticator-assigned id."""

    async def find_credentials_by_owner_handle(
        self,
        user_handle: bytes,
    ) -> list[StoredCredential]:
        """Credentials whose owner handle matches."""
        return await self.list_credentials(user_handle)

    @abstractmethod
    async def update_signature_counter(
        self,
        credential_id: bytes,
        new_count: int,
    ) -> None:
        """
        Overwrite a credential's signature counter.

        Raises:
            NotFoundError: if the credential no longer exists.
        """


class InMemoryCredentialStore(CredentialStore):
    """
    Credential store held in process memory.

    A single lock serializes mutations, which makes the uniqueness check and
    insertion one critical section. Lookups return copies so callers cannot
    mutate stored state behind the lock.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}  # name -> user
        self._users_by_handle: dict[bytes, User] = {}
        self._credentials: dict[bytes, list[bytes]] = {}  # user handle -> credential ids
        self._credential_index: dict[bytes, StoredCredential] = {}  # credential id -> credential
        self._lock = asyncio.Lock()
        self._logger = logger.bind(store="memory")

    async def get_or_create_user(self, name: str) -> User:
        async with self._lock:
            user = self._users.get(name)
            if user is not None:
                return user

            user = User(id=generate_user_handle(), name=name)
            self._users[name] = user
            self._users_by_handle[user.id] = user

        self._logger.info("User created", username=name)
        return user

    async def get_user(self, name: str) -> Optional[User]:
        return self._users.get(name)

    async def get_user_by_handle(self, user_handle: bytes) -> Optional[User]:
        return self._users_by_handle.get(user_handle)

    async def list_credentials(self, user_handle: bytes) -> list[StoredCredential]:
        async with self._lock:
            return [
                replace(self._credential_index[cid])
                for cid in self._credentials.get(user_handle, [])
            ]

    async def is_credential_id_unique(self, candidate_id: bytes) -> bool:
        return candidate_id not in self._credential_index

    async def insert_credential(
        self,
        user_handle: bytes,
        credential: StoredCredential,
    ) -> None:
        async with self._lock:
            if credential.credential_id in self._credential_index:
                raise DuplicateCredentialError(b64url_encode(credential.credential_id))

            stored = replace(credential, user_handle=user_handle)
            self._credential_index[stored.credential_id] = stored
            self._credentials.setdefault(user_handle, []).append(stored.credential_id)

        self._logger.info(
            "Credential stored",
            credential_id=b64url_encode(credential.credential_id),
            sign_count=credential.sign_count,
        )

    async def find_credential_by_id(
        self,
        credential_id: bytes,
    ) -> Optional[StoredCredential]:
        async with self._lock:
            credential = self._credential_index.get(credential_id)
            return replace(credential) if credential else None

    async def update_signature_counter(
        self,
        credential_id: bytes,
        new_count: int,
    ) -> None:
        async with self._lock:
            credential = self._credential_index.get(credential_id)
            if credential is None:
                raise NotFoundError(
                    "Credential not found",
                    {"credential_id": b64url_encode(credential_id)},
                )
            credential.sign_count = new_count
            credential.last_used_at = time.time()

    def credential_count(self) -> int:
        return len(self._credential_index)

    def user_count(self) -> int:
        return len(self._users)
