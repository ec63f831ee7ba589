"""
Passkey Verifiers

Verification boundary for attestation and assertion responses.
"""

from passkey.verifier.base import (
    AssertionVerification,
    AttestationVerification,
    CeremonyVerifier,
    OwnershipCheck,
    UniquenessCheck,
)
from passkey.verifier.webauthn import WebAuthnVerifier

__all__ = [
    "AssertionVerification",
    "AttestationVerification",
    "CeremonyVerifier",
    "OwnershipCheck",
    "UniquenessCheck",
    "WebAuthnVerifier",
]
