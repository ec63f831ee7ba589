"""
WebAuthn Verifier Backend

CeremonyVerifier implemented with the py_webauthn library. The library checks
client data (type, challenge, origin), the RP ID hash, user presence and
verification flags, attestation statements, assertion signatures and
signature counter regression. Allow-list membership, user-handle ownership
and credential id uniqueness are applied here before the result is trusted.
"""

from __future__ import annotations

from typing import Any

import structlog
from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import AttestationFormat, CredentialDeviceType

from passkey.core.config import CeremonyConfig, RelyingPartyConfig
from passkey.errors import VerificationFailedError
from passkey.types import (
    AuthenticationOptions,
    RegistrationOptions,
    UserVerificationRequirement,
)
from passkey.utils import b64url_encode, extract_raw_id
from passkey.verifier.base import (
    AssertionVerification,
    AttestationVerification,
    CeremonyVerifier,
    OwnershipCheck,
    UniquenessCheck,
    ensure_allowed,
    ensure_counter_advanced,
    ensure_owner,
    ensure_unique,
)

logger = structlog.get_logger(__name__)


class WebAuthnVerifier(CeremonyVerifier):
    """Verifier delegating the cryptography to py_webauthn."""

    def __init__(
        self,
        relying_party: RelyingPartyConfig,
        ceremony: CeremonyConfig,
    ) -> None:
        self.relying_party = relying_party
        self.ceremony = ceremony
        self._supported_algs = [
            COSEAlgorithmIdentifier(alg.value) for alg in ceremony.supported_algorithms
        ]
        self._logger = logger.bind(verifier="webauthn", rp_id=relying_party.id)

    @property
    def expected_origin(self) -> list[str]:
        return list(self.relying_party.origins)

    async def verify_attestation(
        self,
        response: dict[str, Any],
        options: RegistrationOptions,
        uniqueness_check: UniquenessCheck,
    ) -> AttestationVerification:
        try:
            verified = verify_registration_response(
                credential=response,
                expected_challenge=options.challenge,
                expected_rp_id=options.rp.id,
                expected_origin=self.expected_origin,
                require_user_verification=(
                    options.authenticator_selection.user_verification
                    == UserVerificationRequirement.REQUIRED
                ),
                supported_pub_key_algs=self._supported_algs,
            )
        except WebAuthnException as e:
            self._logger.warning("Attestation rejected", reason=str(e))
            raise VerificationFailedError(str(e)) from e

        await ensure_unique(verified.credential_id, uniqueness_check)

        return AttestationVerification(
            credential_id=verified.credential_id,
            public_key=verified.credential_public_key,
            sign_count=verified.sign_count,
            aaguid=verified.aaguid,
            attestation_format=AttestationFormat(verified.fmt).value,
            device_type=CredentialDeviceType(verified.credential_device_type).value,
            backed_up=verified.credential_backed_up,
            user_verified=verified.user_verified,
        )

    async def verify_assertion(
        self,
        response: dict[str, Any],
        options: AuthenticationOptions,
        stored_public_key: bytes,
        stored_sign_count: int,
        ownership_check: OwnershipCheck,
    ) -> AssertionVerification:
        credential_id = extract_raw_id(response)
        ensure_allowed(options, credential_id)
        await ensure_owner(response, options, ownership_check)

        try:
            verified = verify_authentication_response(
                credential=response,
                expected_challenge=options.challenge,
                expected_rp_id=options.rp_id,
                expected_origin=self.expected_origin,
                credential_public_key=stored_public_key,
                credential_current_sign_count=stored_sign_count,
                require_user_verification=(
                    options.user_verification == UserVerificationRequirement.REQUIRED
                ),
            )
        except WebAuthnException as e:
            self._logger.warning(
                "Assertion rejected",
                credential_id=b64url_encode(credential_id),
                reason=str(e),
            )
            raise VerificationFailedError(str(e)) from e

        ensure_counter_advanced(stored_sign_count, verified.new_sign_count)

        return AssertionVerification(
            credential_id=verified.credential_id,
            sign_count=verified.new_sign_count,
            user_verified=verified.user_verified,
            backed_up=verified.credential_backed_up,
        )
