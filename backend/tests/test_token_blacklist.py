"""Tests for the access token blacklist."""

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from taskauth.models.token_blacklist import BlacklistReason, TokenBlacklist
from taskauth.services.errors import StorageError
from taskauth.services.token_blacklist import SQLTokenBlacklist, user_revocation_marker
from taskauth.services.tokens import hash_token


@pytest.fixture(params=["memory", "sql"])
def blacklist_and_user(request, blacklist, sql_blacklist, sql_user):
    if request.param == "memory":
        return blacklist, uuid4()
    return sql_blacklist, sql_user.id


@pytest.fixture
def access_token(signer):
    return signer.issue_access(SimpleNamespace(id=uuid4(), email="a@example.com", role="user"))


def _broken_session():
    raise OperationalError("SELECT", {}, Exception("connection refused"))


@pytest.mark.asyncio
class TestTokenBlacklist:
    async def test_add_and_check(self, blacklist_and_user, access_token):
        ledger, user_id = blacklist_and_user
        assert await ledger.is_blacklisted(access_token) is False

        assert await ledger.add(access_token, user_id) is True
        assert await ledger.is_blacklisted(access_token) is True

    async def test_other_tokens_unaffected(self, blacklist_and_user, access_token, signer):
        ledger, user_id = blacklist_and_user
        await ledger.add(access_token, user_id)
        other = signer.issue_access(SimpleNamespace(id=user_id, email="a@example.com", role="user"))
        assert await ledger.is_blacklisted(other) is False

    async def test_entry_lapses_with_token_expiry(self, blacklist_and_user, access_token, clock):
        ledger, user_id = blacklist_and_user
        await ledger.add(access_token, user_id)

        clock.advance(minutes=15, seconds=-1)
        assert await ledger.is_blacklisted(access_token) is True
        clock.advance(seconds=1)
        assert await ledger.is_blacklisted(access_token) is False

    async def test_unparseable_token_uses_fallback_window(self, blacklist_and_user, clock):
        ledger, user_id = blacklist_and_user
        await ledger.add("opaque-token", user_id)

        clock.advance(hours=23)
        assert await ledger.is_blacklisted("opaque-token") is True
        clock.advance(hours=1)
        assert await ledger.is_blacklisted("opaque-token") is False

    async def test_cleanup_expired(self, blacklist_and_user, access_token, clock):
        ledger, user_id = blacklist_and_user
        await ledger.add(access_token, user_id)
        await ledger.add("opaque-token", user_id)

        clock.advance(minutes=15)
        assert await ledger.cleanup_expired() == 1
        assert await ledger.is_blacklisted("opaque-token") is True

    async def test_revoke_all_for_user_records_marker(self, blacklist_and_user, access_token):
        ledger, user_id = blacklist_and_user
        assert await ledger.revoke_all_for_user(user_id) is True

        # The marker never matches a real token
        assert await ledger.is_blacklisted(access_token) is False
        stats = await ledger.stats()
        assert stats["forced_logout"] == 1

    async def test_stats(self, blacklist_and_user, access_token, clock):
        ledger, user_id = blacklist_and_user
        await ledger.add(access_token, user_id, BlacklistReason.LOGOUT)
        await ledger.add("opaque-token", user_id, BlacklistReason.SECURITY_BREACH)
        clock.advance(minutes=15)

        assert await ledger.stats() == {
            "total": 2,
            "active": 1,
            "logout": 1,
            "forced_logout": 0,
            "security_breach": 1,
        }


@pytest.mark.asyncio
class TestSQLTokenBlacklist:
    async def test_raw_token_never_stored(
        self, sql_blacklist, sql_user, access_token, db_session_maker
    ):
        await sql_blacklist.add(access_token, sql_user.id)

        async with db_session_maker() as session:
            row = (await session.execute(select(TokenBlacklist))).scalar_one()
        assert row.token_hash == hash_token(access_token)
        assert access_token not in (row.token_hash, row.jti)
        assert row.reason == "logout"

    async def test_marker_hash_format(self, sql_blacklist, sql_user, clock, db_session_maker):
        await sql_blacklist.revoke_all_for_user(sql_user.id)

        async with db_session_maker() as session:
            row = (await session.execute(select(TokenBlacklist))).scalar_one()
        assert row.token_hash == user_revocation_marker(sql_user.id, clock())
        assert row.token_hash == f"user_revocation:{sql_user.id}:{int(clock().timestamp())}"

    async def test_anonymous_entry(self, sql_blacklist, access_token):
        assert await sql_blacklist.add(access_token, None) is True
        assert await sql_blacklist.is_blacklisted(access_token) is True

    async def test_check_fails_open(self, db_session_maker, clock, access_token):
        ledger = SQLTokenBlacklist(db_session_maker, clock=clock)
        ledger._session_maker = _broken_session
        assert await ledger.is_blacklisted(access_token) is False

    async def test_check_fails_closed_when_configured(self, db_session_maker, clock, access_token):
        ledger = SQLTokenBlacklist(db_session_maker, fail_closed=True, clock=clock)
        ledger._session_maker = _broken_session
        with pytest.raises(StorageError):
            await ledger.is_blacklisted(access_token)

    async def test_add_propagates_storage_failure(self, db_session_maker, clock, access_token):
        ledger = SQLTokenBlacklist(db_session_maker, clock=clock)
        ledger._session_maker = _broken_session
        with pytest.raises(StorageError):
            await ledger.add(access_token, None)

    async def test_custom_fallback_window(self, db_session_maker, clock):
        ledger = SQLTokenBlacklist(db_session_maker, fallback_window=timedelta(hours=1), clock=clock)
        await ledger.add("opaque-token", None)
        clock.advance(hours=1)
        assert await ledger.is_blacklisted("opaque-token") is False
