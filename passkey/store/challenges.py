"""
Passkey Challenge Registry

Outstanding registration/authentication challenges keyed by
``(kind, subject_key)``. A challenge is read and removed in one step, so it
can finish at most one ceremony.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from passkey.errors import ChallengeExpiredError, ChallengeNotFoundError
from passkey.types import CeremonyOptions, ChallengeKind, PendingChallenge
from passkey.utils import fingerprint

logger = structlog.get_logger(__name__)


class ChallengeRegistry(ABC):
    """Abstract challenge registry."""

    async def initialize(self) -> None:
        """Prepare the backing storage."""

    async def shutdown(self) -> None:
        """Release the backing storage."""

    @abstractmethod
    async def put(
        self,
        kind: ChallengeKind,
        subject_key: str,
        options: CeremonyOptions,
    ) -> None:
        """Store the pending challenge, replacing any earlier one for the key."""

    @abstractmethod
    async def take_and_remove(
        self,
        kind: ChallengeKind,
        subject_key: str,
    ) -> CeremonyOptions:
        """
        Atomically read and delete the pending challenge.

        Raises:
            ChallengeNotFoundError: nothing pending for the key.
            ChallengeExpiredError: the pending challenge outlived the TTL.
        """

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired challenges, returning how many were removed."""

    @abstractmethod
    async def pending_count(self) -> int:
        """Number of challenges currently stored."""


class InMemoryChallengeRegistry(ChallengeRegistry):
    """
    Challenge registry held in process memory.

    Args:
        ttl_seconds: Maximum challenge age; ``None`` or ``0`` disables expiry.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds or None
        self._clock = clock
        self._pending: dict[tuple[ChallengeKind, str], PendingChallenge] = {}
        self._lock = asyncio.Lock()
        self._logger = logger.bind(registry="memory")

    def _is_expired(self, challenge: PendingChallenge, now: float) -> bool:
        return self.ttl_seconds is not None and now - challenge.created_at > self.ttl_seconds

    async def put(
        self,
        kind: ChallengeKind,
        subject_key: str,
        options: CeremonyOptions,
    ) -> None:
        key = (kind, subject_key)
        async with self._lock:
            replaced = self._pending.get(key)
            self._pending[key] = PendingChallenge(
                kind=kind,
                subject_key=subject_key,
                options=options,
                created_at=self._clock(),
            )

        if replaced is not None:
            # Finishing the abandoned ceremony fails challenge binding and
            # consumes this newer challenge.
            self._logger.warning(
                "Replaced pending challenge",
                kind=kind.value,
                subject_key=subject_key,
                replaced_challenge=fingerprint(replaced.options.challenge),
            )

        self._logger.debug(
            "Challenge stored",
            kind=kind.value,
            subject_key=subject_key,
            challenge=fingerprint(options.challenge),
        )

    async def take_and_remove(
        self,
        kind: ChallengeKind,
        subject_key: str,
    ) -> CeremonyOptions:
        async with self._lock:
            challenge = self._pending.pop((kind, subject_key), None)

        if challenge is None:
            raise ChallengeNotFoundError(
                f"No pending {kind.value} challenge",
                {"subject_key": subject_key},
            )

        if self._is_expired(challenge, self._clock()):
            self._logger.info(
                "Challenge expired",
                kind=kind.value,
                subject_key=subject_key,
            )
            raise ChallengeExpiredError(
                f"Pending {kind.value} challenge expired",
                {"subject_key": subject_key},
            )

        return challenge.options

    async def purge_expired(self) -> int:
        now = self._clock()
        async with self._lock:
            expired = [
                key for key, challenge in self._pending.items()
                if self._is_expired(challenge, now)
            ]
            for key in expired:
                del self._pending[key]

        if expired:
            self._logger.info("Purged expired challenges", count=len(expired))
        return len(expired)

    async def pending_count(self) -> int:
        return len(self._pending)
