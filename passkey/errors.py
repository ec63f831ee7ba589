"""
Passkey Errors

Error taxonomy for the ceremony engine. Every failure ends the ceremony
attempt; callers recover by restarting from the begin step.
"""

from __future__ import annotations

from typing import Any, Optional


class PasskeyError(Exception):
    """Base exception for ceremony and store errors."""

    code = "passkey_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable error body."""
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class InvalidRequestError(PasskeyError):
    """Malformed ceremony input (empty username, unparseable response)."""

    code = "invalid_request"


class MissingChallengeError(PasskeyError):
    """No pending challenge: never began, already consumed, overwritten or expired."""

    code = "missing_challenge"

    def __init__(self, kind: str, subject_key: str, reason: str = "not_found"):
        super().__init__(
            f"Missing {kind} challenge for {subject_key!r}",
            {"kind": kind, "subject_key": subject_key, "reason": reason},
        )


class DuplicateCredentialError(PasskeyError):
    """A credential with the same id is already registered."""

    code = "duplicate_credential"

    def __init__(self, credential_id: str):
        super().__init__(
            "Credential already registered",
            {"credential_id": credential_id},
        )


class UnknownCredentialError(PasskeyError):
    """Assertion references a credential id that is not in the store."""

    code = "unknown_credential"

    def __init__(self, credential_id: str):
        super().__init__(
            "Unknown credential",
            {"credential_id": credential_id},
        )


class VerificationFailedError(PasskeyError):
    """Cryptographic or protocol-level rejection of a ceremony response."""

    code = "verification_failed"

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        self.reason = reason
        super().__init__(f"Verification failed: {reason}", details)


class NotFoundError(PasskeyError):
    """Referenced entity is absent."""

    code = "not_found"


class ChallengeNotFoundError(NotFoundError):
    """No challenge stored under the requested key."""

    code = "challenge_not_found"


class ChallengeExpiredError(ChallengeNotFoundError):
    """A challenge existed but outlived its TTL."""

    code = "challenge_expired"
