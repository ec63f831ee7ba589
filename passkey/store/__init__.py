"""
Passkey Storage

Credential store and challenge registry contracts with their backends.
"""

from passkey.store.challenges import ChallengeRegistry, InMemoryChallengeRegistry
from passkey.store.credentials import CredentialStore, InMemoryCredentialStore
from passkey.store.sqlite import SQLiteCredentialStore

__all__ = [
    "ChallengeRegistry",
    "InMemoryChallengeRegistry",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SQLiteCredentialStore",
]
