"""
Passkey Types

Data model for the ceremony engine: users, stored credentials, pending
challenges and the WebAuthn option structures handed to the client.

References:
- W3C WebAuthn Level 3: https://www.w3.org/TR/webauthn-3/
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from passkey.utils import b64url_encode


# =============================================================================
# WebAuthn Enumerations
# =============================================================================


class AuthenticatorAttachment(str, Enum):
    """Authenticator attachment modality."""
    PLATFORM = "platform"  # Built-in (Touch ID, Windows Hello, Face ID)
    CROSS_PLATFORM = "cross-platform"  # Roaming (USB keys, NFC, BLE)


class UserVerificationRequirement(str, Enum):
    """User verification requirement."""
    REQUIRED = "required"
    PREFERRED = "preferred"
    DISCOURAGED = "discouraged"


class ResidentKeyRequirement(str, Enum):
    """Resident key (discoverable credential) requirement."""
    REQUIRED = "required"
    PREFERRED = "preferred"
    DISCOURAGED = "discouraged"


class AttestationConveyancePreference(str, Enum):
    """Attestation conveyance preference."""
    NONE = "none"
    INDIRECT = "indirect"
    DIRECT = "direct"
    ENTERPRISE = "enterprise"


class PublicKeyCredentialType(str, Enum):
    """Public key credential type."""
    PUBLIC_KEY = "public-key"


class COSEAlgorithm(int, Enum):
    """COSE algorithm identifiers."""
    ES256 = -7      # ECDSA w/ SHA-256
    ES512 = -36     # ECDSA w/ SHA-512
    RS256 = -257    # RSASSA-PKCS1-v1_5 w/ SHA-256
    PS256 = -37     # RSASSA-PSS w/ SHA-256
    EDDSA = -8      # EdDSA


class AuthenticatorTransport(str, Enum):
    """Authenticator transport mechanisms."""
    USB = "usb"
    NFC = "nfc"
    BLE = "ble"
    SMART_CARD = "smart-card"
    HYBRID = "hybrid"
    INTERNAL = "internal"


class ChallengeKind(str, Enum):
    """Ceremony a pending challenge belongs to."""
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class CeremonyState(str, Enum):
    """Ceremony state machine: Idle -> OptionsIssued -> Verified | Failed."""
    IDLE = "idle"
    OPTIONS_ISSUED = "options_issued"
    VERIFIED = "verified"
    FAILED = "failed"


# =============================================================================
# Option Structures
# =============================================================================


@dataclass
class PublicKeyCredentialDescriptor:
    """Descriptor for a public key credential."""
    id: bytes
    type: PublicKeyCredentialType = PublicKeyCredentialType.PUBLIC_KEY
    transports: list[AuthenticatorTransport] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.type.value,
            "id": b64url_encode(self.id),
        }
        if self.transports:
            result["transports"] = [t.value for t in self.transports]
        return result


@dataclass
class PublicKeyCredentialUserEntity:
    """User entity for credential creation."""
    id: bytes
    name: str
    display_name: str


@dataclass
class PublicKeyCredentialRpEntity:
    """Relying party entity."""
    id: str
    name: str


@dataclass
class PublicKeyCredentialParameters:
    """Parameters for credential creation."""
    alg: COSEAlgorithm
    type: PublicKeyCredentialType = PublicKeyCredentialType.PUBLIC_KEY


@dataclass
class AuthenticatorSelectionCriteria:
    """Criteria for authenticator selection."""
    authenticator_attachment: Optional[AuthenticatorAttachment] = None
    resident_key: ResidentKeyRequirement = ResidentKeyRequirement.PREFERRED
    require_resident_key: bool = False
    user_verification: UserVerificationRequirement = UserVerificationRequirement.PREFERRED


@dataclass
class RegistrationOptions:
    """WebAuthn registration options (PublicKeyCredentialCreationOptions)."""
    challenge: bytes
    rp: PublicKeyCredentialRpEntity
    user: PublicKeyCredentialUserEntity
    pub_key_cred_params: list[PublicKeyCredentialParameters]
    timeout: int = 60000  # milliseconds
    exclude_credentials: list[PublicKeyCredentialDescriptor] = field(default_factory=list)
    authenticator_selection: AuthenticatorSelectionCriteria = field(
        default_factory=AuthenticatorSelectionCriteria
    )
    attestation: AttestationConveyancePreference = AttestationConveyancePreference.NONE

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary for client."""
        selection = self.authenticator_selection
        sel: dict[str, Any] = {
            "residentKey": selection.resident_key.value,
            "requireResidentKey": selection.require_resident_key,
            "userVerification": selection.user_verification.value,
        }
        if selection.authenticator_attachment:
            sel["authenticatorAttachment"] = selection.authenticator_attachment.value

        return {
            "challenge": b64url_encode(self.challenge),
            "rp": {"id": self.rp.id, "name": self.rp.name},
            "user": {
                "id": b64url_encode(self.user.id),
                "name": self.user.name,
                "displayName": self.user.display_name,
            },
            "pubKeyCredParams": [
                {"type": p.type.value, "alg": p.alg.value}
                for p in self.pub_key_cred_params
            ],
            "timeout": self.timeout,
            "excludeCredentials": [c.to_json() for c in self.exclude_credentials],
            "authenticatorSelection": sel,
            "attestation": self.attestation.value,
        }


@dataclass
class AuthenticationOptions:
    """WebAuthn authentication options (PublicKeyCredentialRequestOptions)."""
    challenge: bytes
    rp_id: str
    timeout: int = 60000
    allow_credentials: list[PublicKeyCredentialDescriptor] = field(default_factory=list)
    user_verification: UserVerificationRequirement = UserVerificationRequirement.PREFERRED

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary for client."""
        return {
            "challenge": b64url_encode(self.challenge),
            "timeout": self.timeout,
            "rpId": self.rp_id,
            "allowCredentials": [c.to_json() for c in self.allow_credentials],
            "userVerification": self.user_verification.value,
        }


CeremonyOptions = Union[RegistrationOptions, AuthenticationOptions]


# =============================================================================
# Stored State
# =============================================================================


@dataclass
class User:
    """Account that owns credentials. Never deleted by the engine."""
    id: bytes
    name: str
    display_name: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.name

    def to_entity(self) -> PublicKeyCredentialUserEntity:
        return PublicKeyCredentialUserEntity(
            id=self.id,
            name=self.name,
            display_name=self.display_name,
        )


@dataclass
class StoredCredential:
    """Registered credential. Only the counter fields change after creation."""
    credential_id: bytes
    public_key: bytes
    sign_count: int
    user_handle: bytes
    transports: list[AuthenticatorTransport] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_used_at: Optional[float] = None
    aaguid: Optional[str] = None
    attestation_format: Optional[str] = None
    device_type: Optional[str] = None
    backed_up: bool = False

    def descriptor(self) -> PublicKeyCredentialDescriptor:
        return PublicKeyCredentialDescriptor(
            id=self.credential_id,
            transports=list(self.transports),
        )

    def summary(self) -> dict[str, Any]:
        """Public view of the credential, without key material."""
        return {
            "credential_id": b64url_encode(self.credential_id),
            "sign_count": self.sign_count,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
            "transports": [t.value for t in self.transports],
            "attestation_format": self.attestation_format,
            "device_type": self.device_type,
            "backed_up": self.backed_up,
        }


@dataclass
class PendingChallenge:
    """Outstanding ceremony challenge, consumed exactly once."""
    kind: ChallengeKind
    subject_key: str
    options: CeremonyOptions
    created_at: float


# =============================================================================
# Ceremony Results
# =============================================================================


@dataclass
class RegistrationResult:
    """Outcome of a successful registration finish."""
    credential_id: bytes
    username: str
    sign_count: int
    state: CeremonyState = CeremonyState.VERIFIED

    def to_json(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "credentialId": b64url_encode(self.credential_id),
        }


@dataclass
class AuthenticationResult:
    """Outcome of a successful authentication finish."""
    username: str
    credential_id: bytes
    sign_count: int
    state: CeremonyState = CeremonyState.VERIFIED

    @property
    def verified(self) -> bool:
        return self.state == CeremonyState.VERIFIED

    def to_json(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "username": self.username,
            "counter": self.sign_count,
            "verified": self.verified,
        }
