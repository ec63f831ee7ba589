"""
Passkey Registration Ceremony

Enrolls a new credential for a user.

States: Idle -> OptionsIssued (begin) -> Verified | Failed (finish).
"""

from __future__ import annotations

from typing import Any, Optional

from passkey.ceremony.base import Ceremony
from passkey.errors import PasskeyError
from passkey.types import (
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    CeremonyState,
    ChallengeKind,
    PublicKeyCredentialParameters,
    PublicKeyCredentialRpEntity,
    RegistrationOptions,
    RegistrationResult,
    ResidentKeyRequirement,
    StoredCredential,
)
from passkey.utils import b64url_encode, fingerprint, require_username


def parse_transports(response: dict[str, Any]) -> list[AuthenticatorTransport]:
    """Transports reported by the client, ignoring values we do not know."""
    hints = (response.get("response") or {}).get("transports") or []
    if not isinstance(hints, list):
        return []

    transports = []
    for hint in hints:
        try:
            transports.append(AuthenticatorTransport(hint))
        except ValueError:
            continue
    return transports


class RegistrationCeremony(Ceremony):
    """Begin/finish for enrolling a new credential."""

    kind = ChallengeKind.REGISTRATION

    async def begin(
        self,
        username: str,
        display_name: Optional[str] = None,
    ) -> RegistrationOptions:
        """
        Issue creation options and store them as the pending challenge.

        Creates the user on first use. Credentials the user already owns are
        excluded so the same authenticator is not registered twice.
        """
        username = require_username(username)
        user = await self.store.get_or_create_user(username)
        existing = await self.store.list_credentials(user.id)

        options = RegistrationOptions(
            challenge=self._new_challenge(),
            rp=PublicKeyCredentialRpEntity(
                id=self.relying_party.id,
                name=self.relying_party.name,
            ),
            user=user.to_entity(),
            pub_key_cred_params=[
                PublicKeyCredentialParameters(alg=alg)
                for alg in self.config.supported_algorithms
            ],
            timeout=self.config.timeout_ms,
            exclude_credentials=[c.descriptor() for c in existing],
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=self.config.resident_key,
                require_resident_key=self.config.resident_key == ResidentKeyRequirement.REQUIRED,
                user_verification=self.config.user_verification,
            ),
            attestation=self.config.attestation,
        )
        if display_name:
            options.user.display_name = display_name

        await self.challenges.put(self.kind, username, options)

        self._logger.info(
            "Registration options issued",
            username=username,
            state=CeremonyState.OPTIONS_ISSUED.value,
            excluded=len(options.exclude_credentials),
            challenge=fingerprint(options.challenge),
        )
        return options

    async def finish(
        self,
        username: str,
        response: dict[str, Any],
    ) -> RegistrationResult:
        """
        Verify the attestation and store the new credential.

        Raises:
            MissingChallengeError: no pending registration for ``username``.
            VerificationFailedError: the verifier rejected the response.
            DuplicateCredentialError: the credential id was taken concurrently.
        """
        username = require_username(username)
        try:
            options = await self._consume_challenge(username)
            verification = await self.verifier.verify_attestation(
                response,
                options,
                self.store.is_credential_id_unique,
            )

            credential = StoredCredential(
                credential_id=verification.credential_id,
                public_key=verification.public_key,
                sign_count=verification.sign_count,
                user_handle=options.user.id,
                transports=parse_transports(response),
                aaguid=verification.aaguid,
                attestation_format=verification.attestation_format,
                device_type=verification.device_type,
                backed_up=verification.backed_up,
            )
            await self.store.insert_credential(options.user.id, credential)
        except PasskeyError as e:
            self._logger.warning(
                "Registration failed",
                username=username,
                state=CeremonyState.FAILED.value,
                error=e.code,
                reason=e.message,
            )
            raise

        self._logger.info(
            "Registration verified",
            username=username,
            state=CeremonyState.VERIFIED.value,
            credential_id=b64url_encode(credential.credential_id),
            attestation_format=credential.attestation_format,
        )
        return RegistrationResult(
            credential_id=credential.credential_id,
            username=username,
            sign_count=credential.sign_count,
        )
