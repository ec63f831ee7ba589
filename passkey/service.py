"""
Passkey Service

Central coordinator wiring the credential store, challenge registry and
verifier into the registration and authentication ceremonies. This is the
entry point used by the HTTP adapter and the CLI.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog

from passkey.ceremony import AuthenticationCeremony, RegistrationCeremony
from passkey.core.config import PasskeyConfig, get_config
from passkey.errors import NotFoundError
from passkey.store import (
    ChallengeRegistry,
    CredentialStore,
    InMemoryChallengeRegistry,
    InMemoryCredentialStore,
    SQLiteCredentialStore,
)
from passkey.types import (
    AuthenticationOptions,
    AuthenticationResult,
    RegistrationOptions,
    RegistrationResult,
)
from passkey.verifier import CeremonyVerifier, WebAuthnVerifier

logger = structlog.get_logger(__name__)


def build_credential_store(config: PasskeyConfig) -> CredentialStore:
    """Credential store for the configured backend."""
    if config.storage.backend == "sqlite":
        return SQLiteCredentialStore(
            config.storage.sqlite_path,
            busy_timeout_ms=config.storage.busy_timeout_ms,
        )
    return InMemoryCredentialStore()


class PasskeyService:
    """
    Passwordless ceremony engine.

    Features:
    - Registration and authentication begin/finish
    - Single-use challenges with optional TTL and background purge
    - Pluggable credential store and verifier backends
    """

    def __init__(
        self,
        config: Optional[PasskeyConfig] = None,
        store: Optional[CredentialStore] = None,
        challenges: Optional[ChallengeRegistry] = None,
        verifier: Optional[CeremonyVerifier] = None,
    ):
        self.config = config or get_config()
        ceremony = self.config.ceremony

        self.store = store or build_credential_store(self.config)
        self.challenges = challenges or InMemoryChallengeRegistry(
            ttl_seconds=ceremony.challenge_ttl_seconds,
        )
        self.verifier = verifier or WebAuthnVerifier(self.config.relying_party, ceremony)

        collaborators = (
            self.store,
            self.challenges,
            self.verifier,
            self.config.relying_party,
            ceremony,
        )
        self.registration = RegistrationCeremony(*collaborators)
        self.authentication = AuthenticationCeremony(*collaborators)

        self._cleanup_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._initialized = False

    async def initialize(self) -> None:
        """Open storage and start challenge housekeeping."""
        if self._initialized:
            return

        logger.info("Initializing Passkey Service", rp_id=self.config.relying_party.id)

        await self.store.initialize()
        await self.challenges.initialize()

        if self.config.ceremony.challenge_ttl_seconds:
            self._shutdown_event.clear()
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

        self._initialized = True
        logger.info("Passkey Service initialized")

    async def shutdown(self) -> None:
        """Stop housekeeping and close storage."""
        logger.info("Shutting down Passkey Service")
        self._shutdown_event.set()

        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        await self.challenges.shutdown()
        await self.store.shutdown()

        self._initialized = False
        logger.info("Passkey Service shutdown complete")

    async def _cleanup_loop(self) -> None:
        """Periodically drop expired challenges."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.sleep(self.config.ceremony.cleanup_interval_seconds)
                await self.challenges.purge_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Challenge cleanup error", error=str(e))

    # =========================================================================
    # Ceremony operations
    # =========================================================================

    async def begin_registration(
        self,
        username: str,
        display_name: Optional[str] = None,
    ) -> RegistrationOptions:
        return await self.registration.begin(username, display_name)

    async def finish_registration(
        self,
        username: str,
        response: dict[str, Any],
    ) -> RegistrationResult:
        return await self.registration.finish(username, response)

    async def begin_authentication(
        self,
        username: Optional[str] = None,
    ) -> AuthenticationOptions:
        return await self.authentication.begin(username)

    async def finish_authentication(
        self,
        username: Optional[str],
        response: dict[str, Any],
    ) -> AuthenticationResult:
        return await self.authentication.finish(username, response)

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_user_credentials(self, username: str) -> list[dict[str, Any]]:
        """Summaries of a user's credentials, without key material."""
        user = await self.store.get_user(username)
        if user is None:
            raise NotFoundError("User not found", {"username": username})
        credentials = await self.store.find_credentials_by_owner_handle(user.id)
        return [c.summary() for c in credentials]

    async def status(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "rp_id": self.config.relying_party.id,
            "storage": self.config.storage.backend,
            "pending_challenges": await self.challenges.pending_count(),
            "challenge_ttl_seconds": self.config.ceremony.challenge_ttl_seconds,
        }
