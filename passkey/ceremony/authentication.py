"""
Passkey Authentication Ceremony

Logs a user in with an existing credential.

States: Idle -> OptionsIssued (begin) -> Verified | Failed (finish).
"""

from __future__ import annotations

import hmac
from typing import Any, Optional

from passkey.ceremony.base import Ceremony
from passkey.errors import PasskeyError, UnknownCredentialError
from passkey.types import (
    AuthenticationOptions,
    AuthenticationResult,
    CeremonyState,
    ChallengeKind,
    PublicKeyCredentialDescriptor,
)
from passkey.utils import b64url_encode, extract_raw_id, fingerprint


class AuthenticationCeremony(Ceremony):
    """Begin/finish for asserting an existing credential."""

    kind = ChallengeKind.AUTHENTICATION

    def subject_key(self, username: Optional[str]) -> str:
        """Registry key: the username, or the anonymous key for discoverable flows."""
        return username or self.config.anonymous_key

    async def begin(self, username: Optional[str] = None) -> AuthenticationOptions:
        """
        Issue request options and store them as the pending challenge.

        A known username restricts the allow-list to that user's credentials.
        Otherwise the allow-list is empty and the authenticator picks a
        discoverable credential. Never creates a user.
        """
        allow_credentials: list[PublicKeyCredentialDescriptor] = []
        if username:
            user = await self.store.get_user(username)
            if user is not None:
                allow_credentials = [
                    c.descriptor() for c in await self.store.list_credentials(user.id)
                ]

        options = AuthenticationOptions(
            challenge=self._new_challenge(),
            rp_id=self.relying_party.id,
            timeout=self.config.timeout_ms,
            allow_credentials=allow_credentials,
            user_verification=self.config.user_verification,
        )

        key = self.subject_key(username)
        await self.challenges.put(self.kind, key, options)

        self._logger.info(
            "Authentication options issued",
            subject_key=key,
            state=CeremonyState.OPTIONS_ISSUED.value,
            credential_count=len(allow_credentials),
            challenge=fingerprint(options.challenge),
        )
        return options

    async def _is_owner(self, user_handle: bytes, credential_id: bytes) -> bool:
        credential = await self.store.find_credential_by_id(credential_id)
        return credential is not None and hmac.compare_digest(credential.user_handle, user_handle)

    async def finish(
        self,
        username: Optional[str],
        response: dict[str, Any],
    ) -> AuthenticationResult:
        """
        Verify the assertion and record the authenticator's new counter.

        Raises:
            MissingChallengeError: no pending authentication for the key.
            UnknownCredentialError: the asserted credential is not stored.
            VerificationFailedError: signature, origin, challenge, ownership
                or counter check failed.
        """
        key = self.subject_key(username)
        try:
            options = await self._consume_challenge(key)

            credential_id = extract_raw_id(response)
            credential = await self.store.find_credential_by_id(credential_id)
            if credential is None:
                raise UnknownCredentialError(b64url_encode(credential_id))

            verification = await self.verifier.verify_assertion(
                response,
                options,
                credential.public_key,
                credential.sign_count,
                self._is_owner,
            )

            # The authenticator's counter is authoritative; never increment locally.
            await self.store.update_signature_counter(
                credential.credential_id,
                verification.sign_count,
            )
        except PasskeyError as e:
            self._logger.warning(
                "Authentication failed",
                subject_key=key,
                state=CeremonyState.FAILED.value,
                error=e.code,
                reason=e.message,
            )
            raise

        owner = await self.store.get_user_by_handle(credential.user_handle)
        resolved = owner.name if owner is not None else key

        self._logger.info(
            "Authentication verified",
            username=resolved,
            state=CeremonyState.VERIFIED.value,
            credential_id=b64url_encode(credential.credential_id),
            sign_count=verification.sign_count,
        )
        return AuthenticationResult(
            username=resolved,
            credential_id=credential.credential_id,
            sign_count=verification.sign_count,
        )
