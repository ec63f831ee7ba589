"""
Passkey Ceremony Verifier

Boundary to the cryptographic verification of attestation and assertion
payloads. The ceremonies depend only on this contract, so alternative
cryptographic backends can be substituted without touching ceremony logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from passkey.errors import VerificationFailedError
from passkey.types import AuthenticationOptions, RegistrationOptions
from passkey.utils import b64url_encode, extract_raw_id, extract_user_handle

# (candidate credential id) -> True if no stored credential uses it
UniquenessCheck = Callable[[bytes], Awaitable[bool]]

# (user handle, credential id) -> True if the handle owns the credential
OwnershipCheck = Callable[[bytes, bytes], Awaitable[bool]]


@dataclass
class AttestationVerification:
    """Verified registration data extracted from an attestation."""
    credential_id: bytes
    public_key: bytes
    sign_count: int
    aaguid: Optional[str] = None
    attestation_format: Optional[str] = None
    device_type: Optional[str] = None
    backed_up: bool = False
    user_verified: bool = False


@dataclass
class AssertionVerification:
    """Verified authentication data extracted from an assertion."""
    credential_id: bytes
    sign_count: int
    user_verified: bool = False
    backed_up: bool = False


class CeremonyVerifier(ABC):
    """
    Abstract verifier for registration and authentication responses.

    Implementations raise VerificationFailedError for any rejection: bad
    signature, origin/challenge mismatch, duplicate credential id,
    ownership mismatch or signature counter regression.
    """

    @abstractmethod
    async def verify_attestation(
        self,
        response: dict[str, Any],
        options: RegistrationOptions,
        uniqueness_check: UniquenessCheck,
    ) -> AttestationVerification:
        """Verify a registration (attestation) response."""

    @abstractmethod
    async def verify_assertion(
        self,
        response: dict[str, Any],
        options: AuthenticationOptions,
        stored_public_key: bytes,
        stored_sign_count: int,
        ownership_check: OwnershipCheck,
    ) -> AssertionVerification:
        """Verify an authentication (assertion) response."""


# =============================================================================
# Shared protocol rules
# =============================================================================


async def ensure_unique(credential_id: bytes, uniqueness_check: UniquenessCheck) -> None:
    """Reject a credential id that is already registered."""
    if not await uniqueness_check(credential_id):
        raise VerificationFailedError(
            "credential id already registered",
            {"credential_id": b64url_encode(credential_id)},
        )


def ensure_allowed(options: AuthenticationOptions, credential_id: bytes) -> None:
    """A non-empty allow-list must contain the asserted credential."""
    if options.allow_credentials and not any(
        c.id == credential_id for c in options.allow_credentials
    ):
        raise VerificationFailedError(
            "credential not in allow list",
            {"credential_id": b64url_encode(credential_id)},
        )


async def ensure_owner(
    response: dict[str, Any],
    options: AuthenticationOptions,
    ownership_check: OwnershipCheck,
) -> None:
    """
    Check the response's user handle against the credential owner.

    A discoverable flow (empty allow-list) must carry a user handle, since
    nothing else binds the credential to an account.
    """
    credential_id = extract_raw_id(response)
    user_handle = extract_user_handle(response)

    if user_handle is None:
        if not options.allow_credentials:
            raise VerificationFailedError("user handle required for discoverable credential")
        return

    if not await ownership_check(user_handle, credential_id):
        raise VerificationFailedError(
            "user handle does not own credential",
            {"credential_id": b64url_encode(credential_id)},
        )


def ensure_counter_advanced(stored_sign_count: int, new_sign_count: int) -> None:
    """
    Reject a signature counter that did not increase.

    Authenticators without a counter always report zero; zero-to-zero is
    accepted for them.
    """
    if (new_sign_count > 0 or stored_sign_count > 0) and new_sign_count <= stored_sign_count:
        raise VerificationFailedError(
            "signature counter regression, possible cloned authenticator",
            {"stored_sign_count": stored_sign_count, "sign_count": new_sign_count},
        )
