"""
Shared fixtures for the passkey tests.

Provides a scripted verifier for state-machine tests and a software
authenticator that produces responses py_webauthn accepts.
"""

import asyncio
import hashlib
import json
import os
import struct
from dataclasses import dataclass, field
from typing import Any, Optional

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.hashes import SHA256

from passkey.core.config import CeremonyConfig, PasskeyConfig, RelyingPartyConfig
from passkey.errors import VerificationFailedError
from passkey.service import PasskeyService
from passkey.store import InMemoryChallengeRegistry, InMemoryCredentialStore
from passkey.types import AuthenticationOptions, RegistrationOptions
from passkey.utils import b64url_decode, b64url_encode, extract_raw_id
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

RP_ID = "localhost"
ORIGIN = "https://localhost:5001"


# ============================================================================
# Scripted verifier
# ============================================================================


def attestation_response(
    options: RegistrationOptions,
    credential_id: bytes,
    public_key: bytes = b"public-key",
    sign_count: int = 0,
    signature: str = "ok",
) -> dict[str, Any]:
    """Synthetic attestation understood by ScriptedVerifier."""
    return {
        "id": b64url_encode(credential_id),
        "rawId": b64url_encode(credential_id),
        "type": "public-key",
        "response": {
            "challenge": b64url_encode(options.challenge),
            "publicKey": b64url_encode(public_key),
            "signCount": sign_count,
            "signature": signature,
            "transports": ["usb", "carrier-pigeon"],
        },
    }


def assertion_response(
    options: AuthenticationOptions,
    credential_id: bytes,
    sign_count: int,
    user_handle: Optional[bytes] = None,
    signature: str = "ok",
) -> dict[str, Any]:
    """Synthetic assertion understood by ScriptedVerifier."""
    inner: dict[str, Any] = {
        "challenge": b64url_encode(options.challenge),
        "signCount": sign_count,
        "signature": signature,
    }
    if user_handle is not None:
        inner["userHandle"] = b64url_encode(user_handle)
    return {
        "id": b64url_encode(credential_id),
        "rawId": b64url_encode(credential_id),
        "type": "public-key",
        "response": inner,
    }


class ScriptedVerifier(CeremonyVerifier):
    """
    Verifier that trusts synthetic responses but enforces the protocol rules:
    challenge binding, a "bad" signature marker, uniqueness, allow-list,
    ownership and counter monotonicity.
    """

    def __init__(self) -> None:
        self.assertion_calls: list[dict[str, Any]] = []

    @staticmethod
    def _check(response: dict[str, Any], challenge: bytes) -> dict[str, Any]:
        inner = response["response"]
        if b64url_decode(inner["challenge"]) != challenge:
            raise VerificationFailedError("challenge mismatch")
        if inner.get("signature") != "ok":
            raise VerificationFailedError("invalid signature")
        return inner

    async def verify_attestation(
        self,
        response: dict[str, Any],
        options: RegistrationOptions,
        uniqueness_check: UniquenessCheck,
    ) -> AttestationVerification:
        await asyncio.sleep(0)
        inner = self._check(response, options.challenge)
        credential_id = extract_raw_id(response)
        await ensure_unique(credential_id, uniqueness_check)
        return AttestationVerification(
            credential_id=credential_id,
            public_key=b64url_decode(inner["publicKey"]),
            sign_count=inner["signCount"],
            attestation_format="none",
        )

    async def verify_assertion(
        self,
        response: dict[str, Any],
        options: AuthenticationOptions,
        stored_public_key: bytes,
        stored_sign_count: int,
        ownership_check: OwnershipCheck,
    ) -> AssertionVerification:
        await asyncio.sleep(0)
        self.assertion_calls.append({
            "public_key": stored_public_key,
            "sign_count": stored_sign_count,
        })
        inner = self._check(response, options.challenge)
        credential_id = extract_raw_id(response)
        ensure_allowed(options, credential_id)
        await ensure_owner(response, options, ownership_check)
        ensure_counter_advanced(stored_sign_count, inner["signCount"])
        return AssertionVerification(
            credential_id=credential_id,
            sign_count=inner["signCount"],
        )


# ============================================================================
# Software authenticator
# ============================================================================


def _encode_cose_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """EC2 P-256 public key as a COSE_Key CBOR map."""
    numbers = public_key.public_numbers()
    return cbor2.dumps({
        1: 2,     # kty: EC2
        3: -7,    # alg: ES256
        -1: 1,    # crv: P-256
        -2: numbers.x.to_bytes(32, "big"),
        -3: numbers.y.to_bytes(32, "big"),
    })


@dataclass
class SoftwareCredential:
    credential_id: bytes
    private_key: ec.EllipticCurvePrivateKey
    rp_id: str
    user_handle: bytes
    sign_count: int = 0


@dataclass
class SoftwareAuthenticator:
    """ECDSA P-256 authenticator emitting "none" attestation."""
    origin: str = ORIGIN
    credentials: dict[bytes, SoftwareCredential] = field(default_factory=dict)
    aaguid: bytes = b"\x00" * 16

    def _client_data(self, kind: str, challenge: str, origin: Optional[str]) -> bytes:
        return json.dumps({
            "type": kind,
            "challenge": challenge,
            "origin": origin or self.origin,
            "crossOrigin": False,
        }, separators=(",", ":")).encode("utf-8")

    def make_credential(
        self,
        options: dict,
        origin: Optional[str] = None,
        credential_id: Optional[bytes] = None,
        flags: int = 0x45,
    ) -> dict:
        """navigator.credentials.create() with the server's options JSON."""
        rp_id = options["rp"]["id"]
        private_key = ec.generate_private_key(ec.SECP256R1())
        credential_id = credential_id or os.urandom(32)
        self.credentials[credential_id] = SoftwareCredential(
            credential_id=credential_id,
            private_key=private_key,
            rp_id=rp_id,
            user_handle=b64url_decode(options["user"]["id"]),
        )

        client_data = self._client_data("webauthn.create", options["challenge"], origin)
        auth_data = (
            hashlib.sha256(rp_id.encode("utf-8")).digest()
            + struct.pack(">BI", flags, 0)  # default UP | UV | AT, counter 0
            + self.aaguid
            + struct.pack(">H", len(credential_id))
            + credential_id
            + _encode_cose_public_key(private_key.public_key())
        )
        attestation_object = cbor2.dumps({
            "fmt": "none",
            "attStmt": {},
            "authData": auth_data,
        })

        return {
            "id": b64url_encode(credential_id),
            "rawId": b64url_encode(credential_id),
            "type": "public-key",
            "response": {
                "clientDataJSON": b64url_encode(client_data),
                "attestationObject": b64url_encode(attestation_object),
                "transports": ["internal"],
            },
            "authenticatorAttachment": "platform",
        }

    def get_assertion(
        self,
        options: dict,
        credential_id: Optional[bytes] = None,
        origin: Optional[str] = None,
    ) -> dict:
        """navigator.credentials.get() with the server's options JSON."""
        if credential_id is None:
            for descriptor in options.get("allowCredentials", []):
                candidate = b64url_decode(descriptor["id"])
                if candidate in self.credentials:
                    credential_id = candidate
                    break
        if credential_id is None and not options.get("allowCredentials"):
            credential_id = next(iter(self.credentials), None)
        if credential_id is None or credential_id not in self.credentials:
            raise ValueError("No matching credential found for assertion")

        stored = self.credentials[credential_id]
        stored.sign_count += 1

        client_data = self._client_data("webauthn.get", options["challenge"], origin)
        auth_data = (
            hashlib.sha256(stored.rp_id.encode("utf-8")).digest()
            + struct.pack(">BI", 0x05, stored.sign_count)  # UP | UV
        )
        signature = stored.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(),
            ec.ECDSA(SHA256()),
        )

        return {
            "id": b64url_encode(credential_id),
            "rawId": b64url_encode(credential_id),
            "type": "public-key",
            "response": {
                "clientDataJSON": b64url_encode(client_data),
                "authenticatorData": b64url_encode(auth_data),
                "signature": b64url_encode(signature),
                "userHandle": b64url_encode(stored.user_handle),
            },
            "authenticatorAttachment": "platform",
        }


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config():
    """Configuration bound to the software authenticator's origin."""
    return PasskeyConfig(
        relying_party=RelyingPartyConfig(id=RP_ID, name="Test RP", origins=[ORIGIN]),
        ceremony=CeremonyConfig(challenge_ttl_seconds=None),
    )


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def challenges():
    return InMemoryChallengeRegistry()


@pytest.fixture
def scripted_verifier():
    return ScriptedVerifier()


@pytest.fixture
async def scripted_service(config, store, challenges, scripted_verifier):
    """Service wired to the scripted verifier."""
    service = PasskeyService(
        config,
        store=store,
        challenges=challenges,
        verifier=scripted_verifier,
    )
    await service.initialize()
    yield service
    await service.shutdown()


@pytest.fixture
async def webauthn_service(config):
    """Service wired to the py_webauthn verifier."""
    service = PasskeyService(config)
    await service.initialize()
    yield service
    await service.shutdown()


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator()
