"""User service tests: accounts, credentials and trade lists."""

import logging
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bookswap.core import security
from bookswap.core.exceptions import (
    AuthError,
    DuplicateUsernameError,
    InternalCryptoError,
    MalformedHashError,
    MissingFieldError,
    PasswordPolicyError,
)
from bookswap.core.security import CredentialStore, verify_password
from bookswap.db.session import create_all, create_engine, create_session_factory
from bookswap.models import User
from bookswap.schemas.trade import TradeCreate
from bookswap.schemas.user import UserCreate, UserUpdate
from bookswap.services.user_service import UserService

VALID_PASSWORD = "Abc123!@"


class TestCreateUser:
    """Test account creation."""

    async def test_stores_hash_only(self, alice: User):
        assert alice.password_hash != VALID_PASSWORD
        assert alice.password_hash.startswith("$2b$04$")
        assert verify_password(VALID_PASSWORD, alice.password_hash)
        assert not hasattr(alice, "password")

    async def test_starts_with_empty_lists(self, alice: User):
        assert alice.trades_out == []
        assert alice.trades_in == []
        assert alice.book_ids == set()
        assert alice.password_version == 0

    async def test_profile_fields_saved(self, alice: User):
        assert alice.first_name == "Alice"
        assert alice.city == "Portland"
        assert alice.last_name is None

    async def test_duplicate_username(self, user_service: UserService, alice: User):
        with pytest.raises(DuplicateUsernameError) as exc_info:
            await user_service.create_user(
                UserCreate(username="alice", password="Other789$z", creator_id="local")
            )

        assert exc_info.value.error_code == "DUPLICATE_USERNAME"

    async def test_duplicate_after_stripping(self, user_service: UserService, alice: User):
        with pytest.raises(DuplicateUsernameError):
            await user_service.create_user(
                UserCreate(username=" alice ", password=VALID_PASSWORD, creator_id="local")
            )

    async def test_usernames_are_case_sensitive(self, user_service: UserService, alice: User):
        user = await user_service.create_user(
            UserCreate(username="Alice", password=VALID_PASSWORD, creator_id="local")
        )
        assert user.id != alice.id

    async def test_weak_password_rejected(self, user_service: UserService):
        with pytest.raises(PasswordPolicyError) as exc_info:
            await user_service.create_user(
                UserCreate(username="carol", password="abc12345", creator_id="local")
            )

        assert len(exc_info.value.unmet) == 2
        assert await user_service.get_user_by_username("carol") is None

    @pytest.mark.parametrize(
        ("username", "creator_id", "field"),
        [("", "local", "username"), ("   ", "local", "username"), ("carol", "", "creator_id")],
    )
    async def test_blank_required_field(
        self, user_service: UserService, username, creator_id, field
    ):
        with pytest.raises(MissingFieldError) as exc_info:
            await user_service.create_user(
                UserCreate(username=username, password=VALID_PASSWORD, creator_id=creator_id)
            )

        assert exc_info.value.field == field

    async def test_never_logs_plaintext(self, user_service: UserService, caplog):
        caplog.set_level(logging.DEBUG)
        await user_service.create_user(
            UserCreate(username="carol", password="Secret42!x", creator_id="local")
        )

        for record in caplog.records:
            assert "Secret42!x" not in record.getMessage()
            assert "Secret42!x" not in str(getattr(record, "context", ""))


class TestUpdateUser:
    """Test partial updates and password handling."""

    async def test_profile_update_keeps_hash(self, user_service: UserService, alice: User):
        original_hash = alice.password_hash

        updated = await user_service.update_user(alice.id, UserUpdate(city="Salem"))

        assert updated.city == "Salem"
        assert updated.first_name == "Alice"
        assert updated.password_hash == original_hash
        assert updated.password_version == 0

    async def test_plain_resave_keeps_hash(
        self, user_service: UserService, db_session: AsyncSession, alice: User
    ):
        original_hash = alice.password_hash
        alice.last_name = "Liddell"
        await db_session.commit()

        reloaded = await user_service.get_user_by_id(alice.id)

        assert reloaded.password_hash == original_hash
        assert reloaded.last_name == "Liddell"

    async def test_explicit_none_clears_field(self, user_service: UserService, alice: User):
        updated = await user_service.update_user(alice.id, UserUpdate(city=None))

        assert updated.city is None
        assert updated.first_name == "Alice"

    async def test_same_password_is_not_rehashed(self, user_service: UserService, alice: User):
        original_hash = alice.password_hash

        updated = await user_service.update_user(alice.id, UserUpdate(password=VALID_PASSWORD))

        assert updated.password_hash == original_hash
        assert updated.password_version == 0

    async def test_new_password_is_hashed(self, user_service: UserService, alice: User):
        original_hash = alice.password_hash

        updated = await user_service.update_user(alice.id, UserUpdate(password="New456$pw"))

        assert updated.password_hash != original_hash
        assert updated.password_version == 1
        assert verify_password("New456$pw", updated.password_hash)
        assert await user_service.authenticate("alice", "New456$pw")

    async def test_weak_password_changes_nothing(self, user_service: UserService, alice: User):
        with pytest.raises(PasswordPolicyError):
            await user_service.update_user(
                alice.id, UserUpdate(city="Salem", password="weak")
            )

        reloaded = await user_service.get_user_by_id(alice.id)
        assert reloaded.city == "Portland"

    async def test_failed_hash_leaves_profile_unchanged(
        self, user_service: UserService, alice: User, monkeypatch
    ):
        async def broken_hash(password: str) -> str:
            raise InternalCryptoError()

        monkeypatch.setattr(user_service.credentials, "hash", broken_hash)

        with pytest.raises(InternalCryptoError):
            await user_service.update_user(
                alice.id, UserUpdate(city="Boston", password="New456!!x")
            )

        reloaded = await user_service.get_user_by_id(alice.id)
        assert reloaded.city == "Portland"
        assert reloaded.password_version == 0

    async def test_corrupt_hash_leaves_profile_unchanged(
        self, user_service: UserService, db_session: AsyncSession, alice: User
    ):
        await db_session.execute(
            update(User).where(User.id == alice.id).values(password_hash="corrupt")
        )
        await db_session.commit()

        with pytest.raises(MalformedHashError):
            await user_service.update_user(
                alice.id, UserUpdate(city="Boston", password="New456!!x")
            )

        reloaded = await user_service.get_user_by_id(alice.id)
        assert reloaded.city == "Portland"

    async def test_unknown_user(self, user_service: UserService):
        assert await user_service.update_user(uuid4(), UserUpdate(city="Salem")) is None

    async def test_change_password_bumps_version_each_time(
        self, user_service: UserService, alice: User
    ):
        await user_service.change_password(alice, "First111!a")
        await user_service.change_password(alice, "Second22!b")

        reloaded = await user_service.get_user_by_id(alice.id)
        assert reloaded.password_version == 2
        assert verify_password("Second22!b", reloaded.password_hash)


class TestConcurrentSessions:
    """Test password writes from two sessions on one database file."""

    async def test_change_compares_against_stored_hash(self, tmp_path):
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookswap.db'}", echo=False)
        await create_all(engine)
        factory = create_session_factory(engine)
        credentials = CredentialStore(rounds=4)

        try:
            async with factory() as first, factory() as second:
                first_users = UserService(first, credentials)
                second_users = UserService(second, credentials)
                alice = await first_users.create_user(
                    UserCreate(username="alice", password=VALID_PASSWORD, creator_id="local")
                )
                other_copy = await second_users.get_user_by_id(alice.id)

                await second_users.change_password(other_copy, "Zzz999#q")
                await first_users.change_password(alice, VALID_PASSWORD)

                user = await first_users.authenticate("alice", VALID_PASSWORD)
                assert user.password_version == 2
                with pytest.raises(AuthError):
                    await second_users.authenticate("alice", "Zzz999#q")
        finally:
            await engine.dispose()


class TestAuthenticate:
    """Test credential checks."""

    async def test_success(self, user_service: UserService, alice: User):
        user = await user_service.authenticate("alice", VALID_PASSWORD)
        assert user.id == alice.id

    async def test_failures_are_indistinguishable(self, user_service: UserService, alice: User):
        with pytest.raises(AuthError) as unknown:
            await user_service.authenticate("nouser", VALID_PASSWORD)
        with pytest.raises(AuthError) as wrong:
            await user_service.authenticate("alice", "Wrong123!x")

        assert unknown.value.error_code == wrong.value.error_code == "INVALID_CREDENTIALS"
        assert unknown.value.message == wrong.value.message
        assert unknown.value.details == wrong.value.details == {}

    async def test_unknown_user_still_verifies(
        self, user_service: UserService, monkeypatch
    ):
        calls = []
        real_verify_dummy = user_service.credentials.verify_dummy

        async def recording(candidate: str) -> bool:
            calls.append(candidate)
            return await real_verify_dummy(candidate)

        monkeypatch.setattr(user_service.credentials, "verify_dummy", recording)

        with pytest.raises(AuthError):
            await user_service.authenticate("nouser", VALID_PASSWORD)

        assert len(calls) == 1

    async def test_failure_paths_cost_the_same(
        self, db_session: AsyncSession, alice: User, monkeypatch
    ):
        known, unknown = (
            UserService(db_session, CredentialStore(rounds=4)) for _ in range(2)
        )
        counts = {"hash": 0, "verify": 0}
        real_hash, real_verify = security.hash_password, security.verify_password

        def counting_hash(password: str, rounds: int | None = None) -> str:
            counts["hash"] += 1
            return real_hash(password, rounds)

        def counting_verify(plain_password: str, hashed_password: str) -> bool:
            counts["verify"] += 1
            return real_verify(plain_password, hashed_password)

        monkeypatch.setattr(security, "hash_password", counting_hash)
        monkeypatch.setattr(security, "verify_password", counting_verify)

        observed = []
        for service, username in ((known, "alice"), (unknown, "nouser")):
            counts.update(hash=0, verify=0)
            with pytest.raises(AuthError):
                await service.authenticate(username, "Wrong123!x")
            observed.append(dict(counts))

        assert observed[0] == observed[1] == {"hash": 0, "verify": 1}

    async def test_reason_only_in_logs(self, user_service: UserService, alice: User, caplog):
        caplog.set_level(logging.WARNING)

        with pytest.raises(AuthError):
            await user_service.authenticate("alice", "Wrong123!x")

        reasons = [getattr(r, "context", {}).get("reason") for r in caplog.records]
        assert "invalid_password" in reasons

    async def test_malformed_hash_is_not_auth_failure(
        self, user_service: UserService, db_session: AsyncSession, alice: User
    ):
        await db_session.execute(
            update(User).where(User.id == alice.id).values(password_hash=VALID_PASSWORD)
        )
        await db_session.commit()

        with pytest.raises(MalformedHashError):
            await user_service.authenticate("alice", VALID_PASSWORD)


class TestTradeLists:
    """Test appends to the two trade lists."""

    async def test_append_out_leaves_counterpart_alone(
        self, user_service: UserService, alice: User, bob: User
    ):
        trade = TradeCreate(book_id=uuid4(), owner_id=alice.id, recipient_id=bob.id)

        record = await user_service.append_trade_out(alice, trade)

        assert record.direction == "out"
        assert alice.trades_out == [record]
        reloaded_bob = await user_service.get_user_by_id(bob.id)
        assert reloaded_bob.trades_in == []

    async def test_append_preserves_order_without_dedup(
        self, user_service: UserService, alice: User, bob: User
    ):
        first = TradeCreate(book_id=uuid4(), owner_id=bob.id, recipient_id=alice.id)
        second = TradeCreate(book_id=uuid4(), owner_id=bob.id, recipient_id=alice.id)

        await user_service.append_trade_in(alice, first)
        await user_service.append_trade_in(alice, second)
        await user_service.append_trade_in(alice, first)

        reloaded = await user_service.get_user_by_id(alice.id)
        assert [r.trade_key for r in reloaded.trades_in] == [
            first.trade_key,
            second.trade_key,
            first.trade_key,
        ]
        assert [r.position for r in reloaded.trades_in] == [0, 1, 2]
        assert len({r.id for r in reloaded.trades_in}) == 3

    async def test_appended_copies_do_not_share_state(
        self, user_service: UserService, alice: User, bob: User
    ):
        trade = TradeCreate(book_id=uuid4(), owner_id=alice.id, recipient_id=bob.id)
        outgoing = await user_service.append_trade_out(alice, trade)
        incoming = await user_service.append_trade_in(bob, trade)

        outgoing.accept(bob.id)

        assert outgoing.id != incoming.id
        assert incoming.trade_type == "requested"


class TestBooks:
    async def test_add_and_remove(self, user_service: UserService, alice: User):
        book_id = uuid4()

        await user_service.add_book(alice, book_id)
        await user_service.add_book(alice, book_id)
        assert alice.book_ids == {book_id}

        assert await user_service.remove_book(alice, book_id) is True
        assert await user_service.remove_book(alice, book_id) is False
        assert alice.book_ids == set()
