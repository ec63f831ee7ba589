"""
Passkey Ceremony Base

Collaborators and helpers shared by the registration and authentication
ceremonies.
"""

from __future__ import annotations

import secrets

import structlog

from passkey.core.config import CeremonyConfig, RelyingPartyConfig
from passkey.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    MissingChallengeError,
)
from passkey.store.challenges import ChallengeRegistry
from passkey.store.credentials import CredentialStore
from passkey.types import CeremonyOptions, ChallengeKind
from passkey.verifier.base import CeremonyVerifier

logger = structlog.get_logger(__name__)


class Ceremony:
    """Two-phase (begin/finish) exchange sharing a store, registry and verifier."""

    kind: ChallengeKind

    def __init__(
        self,
        store: CredentialStore,
        challenges: ChallengeRegistry,
        verifier: CeremonyVerifier,
        relying_party: RelyingPartyConfig,
        config: CeremonyConfig,
    ) -> None:
        self.store = store
        self.challenges = challenges
        self.verifier = verifier
        self.relying_party = relying_party
        self.config = config
        self._logger = logger.bind(ceremony=self.kind.value)

    def _new_challenge(self) -> bytes:
        return secrets.token_bytes(self.config.challenge_bytes)

    async def _consume_challenge(self, subject_key: str) -> CeremonyOptions:
        """Take the pending challenge, mapping registry misses to MissingChallengeError."""
        try:
            return await self.challenges.take_and_remove(self.kind, subject_key)
        except ChallengeExpiredError as e:
            raise MissingChallengeError(self.kind.value, subject_key, reason="expired") from e
        except ChallengeNotFoundError as e:
            raise MissingChallengeError(self.kind.value, subject_key) from e
