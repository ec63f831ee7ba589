"""
Passkey - WebAuthn ceremony engine

Passwordless registration and authentication with:
- Single-use, expiring challenges
- Globally unique credential ids
- Signature counter tracking for clone detection
- Pluggable credential stores and verifier backends
"""

__version__ = "1.0.0"

from passkey.core.config import PasskeyConfig
from passkey.errors import (
    DuplicateCredentialError,
    MissingChallengeError,
    NotFoundError,
    PasskeyError,
    UnknownCredentialError,
    VerificationFailedError,
)
from passkey.service import PasskeyService

__all__ = [
    "PasskeyConfig",
    "PasskeyService",
    "PasskeyError",
    "MissingChallengeError",
    "DuplicateCredentialError",
    "UnknownCredentialError",
    "VerificationFailedError",
    "NotFoundError",
    "__version__",
]
