"""Tests for clearing unregistered FCM tokens."""

import pytest

from race_notifier_service.app.services.token_hygiene import clean_invalid_tokens

from conftest import add_user

USERS = "user_preferences"
PREFS = [{"category": "f1", "notificationsEnabled": True, "favoriteDriver": "Max Verstappen"}]


class TestCleanInvalidTokens:
    @pytest.mark.asyncio
    async def test_only_unregistered_tokens_are_cleared(self, db, transport):
        add_user(db, "active", "tok-active", PREFS)
        add_user(db, "uninstalled", "tok-gone", PREFS)
        add_user(db, "flaky", "tok-flaky", PREFS)
        add_user(db, "logged_out", None, PREFS)
        transport.unregistered_tokens.add("tok-gone")
        transport.unreachable_tokens.add("tok-flaky")

        summary = await clean_invalid_tokens(db, transport)

        users = db.docs(USERS)
        assert users["uninstalled"]["fcmToken"] is None
        assert users["uninstalled"]["preferences"] == PREFS
        assert users["active"]["fcmToken"] == "tok-active"
        assert users["flaky"]["fcmToken"] == "tok-flaky"
        assert set(users) == {"active", "uninstalled", "flaky", "logged_out"}
        assert sorted(transport.validated) == ["tok-active", "tok-flaky", "tok-gone"]
        assert summary["tokens_checked"] == 3
        assert summary["tokens_cleared"] == 1
        assert summary["validation_errors"] == 1

    @pytest.mark.asyncio
    async def test_clears_applied_in_one_batch(self, db, transport):
        for i in range(3):
            add_user(db, f"gone{i}", f"tok-gone{i}", PREFS)
            transport.unregistered_tokens.add(f"tok-gone{i}")

        await clean_invalid_tokens(db, transport)

        assert db.committed_batch_sizes == [3]
        assert all(doc["fcmToken"] is None for doc in db.docs(USERS).values())

    @pytest.mark.asyncio
    async def test_no_write_when_every_token_is_valid(self, db, transport):
        add_user(db, "active", "tok-active", PREFS)

        summary = await clean_invalid_tokens(db, transport)

        assert db.committed_batch_sizes == []
        assert summary["tokens_cleared"] == 0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, db, transport):
        db.unavailable_collections.add(USERS)

        with pytest.raises(ConnectionError):
            await clean_invalid_tokens(db, transport)

    @pytest.mark.asyncio
    async def test_malformed_preferences_do_not_block_token_cleanup(self, db, transport):
        db.add(USERS, "broken_prefs", {"fcmToken": "tok-gone", "preferences": [{"notificationsEnabled": True}]})
        transport.unregistered_tokens.add("tok-gone")

        summary = await clean_invalid_tokens(db, transport)

        assert db.docs(USERS)["broken_prefs"]["fcmToken"] is None
        assert summary["tokens_cleared"] == 1
