"""
Passkey Storage Tests

Credential store backends and the challenge registry.
"""

import asyncio

import pytest

from passkey.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    DuplicateCredentialError,
    NotFoundError,
)
from passkey.store import (
    InMemoryChallengeRegistry,
    InMemoryCredentialStore,
    SQLiteCredentialStore,
)
from passkey.types import (
    AuthenticationOptions,
    AuthenticatorTransport,
    ChallengeKind,
    StoredCredential,
)


def make_credential(credential_id: bytes, user_handle: bytes, sign_count: int = 0) -> StoredCredential:
    return StoredCredential(
        credential_id=credential_id,
        public_key=b"cose-key-" + credential_id,
        sign_count=sign_count,
        user_handle=user_handle,
        transports=[AuthenticatorTransport.USB],
    )


def make_options(challenge: bytes = b"c" * 32) -> AuthenticationOptions:
    return AuthenticationOptions(challenge=challenge, rp_id="localhost")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(params=["memory", "sqlite"])
async def credential_store(request, tmp_path):
    """Each credential store backend."""
    if request.param == "memory":
        store = InMemoryCredentialStore()
    else:
        store = SQLiteCredentialStore(tmp_path / "passkey.db")
    await store.initialize()
    yield store
    await store.shutdown()


# ============================================================================
# Credential Store Tests
# ============================================================================


class TestCredentialStore:
    """Tests for the credential store contract."""

    @pytest.mark.asyncio
    async def test_get_or_create_user_is_idempotent(self, credential_store):
        first = await credential_store.get_or_create_user("alice")
        second = await credential_store.get_or_create_user("alice")

        assert first.id == second.id
        assert first.name == "alice"
        assert len(first.id) == 16

    @pytest.mark.asyncio
    async def test_distinct_users_get_distinct_handles(self, credential_store):
        alice = await credential_store.get_or_create_user("alice")
        bob = await credential_store.get_or_create_user("bob")

        assert alice.id != bob.id
        assert (await credential_store.get_user_by_handle(bob.id)).name == "bob"

    @pytest.mark.asyncio
    async def test_get_user_does_not_create(self, credential_store):
        assert await credential_store.get_user("ghost") is None
        assert await credential_store.get_user("ghost") is None

    @pytest.mark.asyncio
    async def test_insert_and_find(self, credential_store):
        alice = await credential_store.get_or_create_user("alice")
        await credential_store.insert_credential(alice.id, make_credential(b"cred-1", alice.id))

        found = await credential_store.find_credential_by_id(b"cred-1")
        assert found is not None
        assert found.public_key == b"cose-key-cred-1"
        assert found.user_handle == alice.id
        assert found.transports == [AuthenticatorTransport.USB]

        owned = await credential_store.find_credentials_by_owner_handle(alice.id)
        assert [c.credential_id for c in owned] == [b"cred-1"]

    @pytest.mark.asyncio
    async def test_list_credentials_empty(self, credential_store):
        alice = await credential_store.get_or_create_user("alice")
        assert await credential_store.list_credentials(alice.id) == []

    @pytest.mark.asyncio
    async def test_uniqueness_spans_all_users(self, credential_store):
        alice = await credential_store.get_or_create_user("alice")
        bob = await credential_store.get_or_create_user("bob")

        assert await credential_store.is_credential_id_unique(b"shared")
        await credential_store.insert_credential(alice.id, make_credential(b"shared", alice.id))
        assert not await credential_store.is_credential_id_unique(b"shared")

        with pytest.raises(DuplicateCredentialError):
            await credential_store.insert_credential(bob.id, make_credential(b"shared", bob.id))

        assert await credential_store.list_credentials(bob.id) == []

    @pytest.mark.asyncio
    async def test_concurrent_inserts_of_same_id(self, credential_store):
        users = [await credential_store.get_or_create_user(f"user{i}") for i in range(5)]

        results = await asyncio.gather(
            *(
                credential_store.insert_credential(u.id, make_credential(b"race", u.id))
                for u in users
            ),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, DuplicateCredentialError)]
        assert results.count(None) == 1
        assert len(failures) == 4

    @pytest.mark.asyncio
    async def test_update_signature_counter(self, credential_store):
        alice = await credential_store.get_or_create_user("alice")
        await credential_store.insert_credential(alice.id, make_credential(b"cred-1", alice.id, 5))

        await credential_store.update_signature_counter(b"cred-1", 9)

        found = await credential_store.find_credential_by_id(b"cred-1")
        assert found.sign_count == 9
        assert found.last_used_at is not None

    @pytest.mark.asyncio
    async def test_update_missing_counter_raises(self, credential_store):
        with pytest.raises(NotFoundError):
            await credential_store.update_signature_counter(b"nope", 1)

    @pytest.mark.asyncio
    async def test_returned_credentials_are_copies(self):
        store = InMemoryCredentialStore()
        alice = await store.get_or_create_user("alice")
        await store.insert_credential(alice.id, make_credential(b"cred-1", alice.id))

        found = await store.find_credential_by_id(b"cred-1")
        found.sign_count = 100

        assert (await store.find_credential_by_id(b"cred-1")).sign_count == 0


class TestSQLiteCredentialStore:
    """Tests specific to the SQLite backend."""

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "nested" / "passkey.db"
        store = SQLiteCredentialStore(path)
        await store.initialize()
        alice = await store.get_or_create_user("alice")
        await store.insert_credential(alice.id, make_credential(b"cred-1", alice.id, 3))
        await store.shutdown()

        reopened = SQLiteCredentialStore(path)
        await reopened.initialize()
        try:
            again = await reopened.get_or_create_user("alice")
            assert again.id == alice.id
            found = await reopened.find_credential_by_id(b"cred-1")
            assert found.sign_count == 3
        finally:
            await reopened.shutdown()

    @pytest.mark.asyncio
    async def test_requires_initialize(self, tmp_path):
        store = SQLiteCredentialStore(tmp_path / "passkey.db")
        with pytest.raises(RuntimeError):
            await store.get_user("alice")


# ============================================================================
# Challenge Registry Tests
# ============================================================================


class TestChallengeRegistry:
    """Tests for single-use challenge storage."""

    @pytest.mark.asyncio
    async def test_take_is_single_use(self):
        registry = InMemoryChallengeRegistry()
        options = make_options()
        await registry.put(ChallengeKind.AUTHENTICATION, "alice", options)

        assert await registry.take_and_remove(ChallengeKind.AUTHENTICATION, "alice") is options
        with pytest.raises(ChallengeNotFoundError):
            await registry.take_and_remove(ChallengeKind.AUTHENTICATION, "alice")

    @pytest.mark.asyncio
    async def test_kinds_are_separate(self):
        registry = InMemoryChallengeRegistry()
        await registry.put(ChallengeKind.AUTHENTICATION, "alice", make_options())

        with pytest.raises(ChallengeNotFoundError):
            await registry.take_and_remove(ChallengeKind.REGISTRATION, "alice")
        assert await registry.pending_count() == 1

    @pytest.mark.asyncio
    async def test_put_replaces_pending(self):
        registry = InMemoryChallengeRegistry()
        first = make_options(b"1" * 32)
        second = make_options(b"2" * 32)
        await registry.put(ChallengeKind.AUTHENTICATION, "alice", first)
        await registry.put(ChallengeKind.AUTHENTICATION, "alice", second)

        assert await registry.pending_count() == 1
        assert await registry.take_and_remove(ChallengeKind.AUTHENTICATION, "alice") is second

    @pytest.mark.asyncio
    async def test_concurrent_take_has_one_winner(self):
        registry = InMemoryChallengeRegistry()
        await registry.put(ChallengeKind.REGISTRATION, "alice", make_options())

        results = await asyncio.gather(
            *(registry.take_and_remove(ChallengeKind.REGISTRATION, "alice") for _ in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, AuthenticationOptions)]
        losers = [r for r in results if isinstance(r, ChallengeNotFoundError)]
        assert len(winners) == 1
        assert len(losers) == 9

    @pytest.mark.asyncio
    async def test_expired_challenge_is_rejected_and_removed(self):
        clock = FakeClock()
        registry = InMemoryChallengeRegistry(ttl_seconds=60, clock=clock)
        await registry.put(ChallengeKind.REGISTRATION, "alice", make_options())

        clock.now += 61
        with pytest.raises(ChallengeExpiredError):
            await registry.take_and_remove(ChallengeKind.REGISTRATION, "alice")

        with pytest.raises(ChallengeNotFoundError) as exc_info:
            await registry.take_and_remove(ChallengeKind.REGISTRATION, "alice")
        assert not isinstance(exc_info.value, ChallengeExpiredError)

    @pytest.mark.asyncio
    async def test_challenge_within_ttl(self):
        clock = FakeClock()
        registry = InMemoryChallengeRegistry(ttl_seconds=60, clock=clock)
        options = make_options()
        await registry.put(ChallengeKind.REGISTRATION, "alice", options)

        clock.now += 59
        assert await registry.take_and_remove(ChallengeKind.REGISTRATION, "alice") is options

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_expiry(self):
        clock = FakeClock()
        registry = InMemoryChallengeRegistry(ttl_seconds=0, clock=clock)
        await registry.put(ChallengeKind.REGISTRATION, "alice", make_options())

        clock.now += 10_000
        assert await registry.purge_expired() == 0
        await registry.take_and_remove(ChallengeKind.REGISTRATION, "alice")

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        clock = FakeClock()
        registry = InMemoryChallengeRegistry(ttl_seconds=60, clock=clock)
        await registry.put(ChallengeKind.REGISTRATION, "old", make_options())
        clock.now += 30
        await registry.put(ChallengeKind.REGISTRATION, "new", make_options())
        clock.now += 31

        assert await registry.purge_expired() == 1
        assert await registry.pending_count() == 1
        await registry.take_and_remove(ChallengeKind.REGISTRATION, "new")
