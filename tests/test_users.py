"""
Tests for the Main-table repositories: users, streaks, connections,
invites and partnerships.
"""
import asyncio

import pytest

from daybyday.errors import ConflictError, InvalidInputError, NotFoundError
from daybyday.schemas import UserCreate, UserUpdate


def run(coro):
    return asyncio.run(coro)


class TestUsers:
    def test_create_and_get(self, dal, store, make_user):
        async def scenario():
            await make_user("alice", "Alice")
            return await dal.users.get_user("alice")

        user = run(scenario())
        assert user["username"] == "Alice"
        assert user["usernameLower"] == "alice"
        assert user["GSI1PK"] == "USERNAME#alice"
        assert "phoneNumber" not in user
        streak = run(store.get(store.tables.main, {"PK": "USER#alice", "SK": "STREAK"}))
        assert streak["currentStreak"] == 0

    def test_duplicate_user_conflicts(self, make_user):
        async def scenario():
            await make_user("alice")
            await make_user("alice")

        with pytest.raises(ConflictError):
            run(scenario())

    def test_get_user_is_cached(self, dal, store, cache, make_user):
        async def scenario():
            await make_user("alice")
            await dal.users.get_user("alice")
            await cache.wait_pending()
            before = store.calls.count("get")
            await dal.users.get_user("alice")
            return before, store.calls.count("get")

        before, after = run(scenario())
        assert before == after

    def test_missing_user_returns_none(self, dal):
        assert run(dal.users.get_user("ghost")) is None

    def test_lookup_by_username_and_email(self, dal, make_user):
        async def scenario():
            await make_user("bob", "BobBuilder")
            return (
                await dal.users.get_user_by_username("bobbuilder"),
                await dal.users.get_user_by_email("BOB@example.com"),
            )

        by_name, by_email = run(scenario())
        assert by_name["uid"] == by_email["uid"] == "bob"

    def test_update_profile_invalidates_cache(self, dal, cache, fake_redis, make_user):
        async def scenario():
            await make_user("alice")
            await dal.users.get_user("alice")
            await cache.wait_pending()
            assert "user:alice" in fake_redis.store
            await dal.users.update_profile("alice", UserUpdate(first_name="Ally", email=None))
            return await dal.users.get_user("alice")

        user = run(scenario())
        assert user["firstName"] == "Ally"
        assert "GSI2PK" not in user
        assert "email" not in user

    def test_update_missing_user_is_not_found(self, dal):
        with pytest.raises(NotFoundError):
            run(dal.users.update_profile("ghost", UserUpdate(first_name="x")))

    def test_search_users_prefix(self, dal, make_user):
        async def scenario():
            await make_user("u1", "sunny")
            await make_user("u2", "sundance")
            await make_user("u3", "moon")
            return await dal.users.search_users("SUN")

        found = run(scenario())
        assert sorted(u["uid"] for u in found) == ["u1", "u2"]

    def test_search_requires_query(self, dal):
        with pytest.raises(InvalidInputError):
            run(dal.users.search_users("  "))

    def test_discover_users_excludes_caller(self, dal, make_user):
        async def scenario():
            for uid in ("a", "b", "c"):
                await make_user(uid)
            return await dal.users.discover_users(limit=10, exclude_uid="b")

        result = run(scenario())
        assert sorted(u["uid"] for u in result["users"]) == ["a", "c"]
        assert result["cursor"] is None

    def test_discover_users_paginates(self, dal, make_user):
        async def scenario():
            for uid in ("a", "b", "c"):
                await make_user(uid)
            pages = [await dal.users.discover_users(limit=2)]
            while pages[-1]["cursor"]:
                pages.append(await dal.users.discover_users(limit=2, cursor=pages[-1]["cursor"]))
            return pages

        pages = run(scenario())
        assert len(pages) > 1
        uids = [u["uid"] for page in pages for u in page["users"]]
        assert sorted(uids) == ["a", "b", "c"]

    def test_delete_account(self, dal, store, make_user):
        async def scenario():
            await make_user("alice")
            await dal.users.delete_account("alice")
            return await dal.users.get_user("alice")

        assert run(scenario()) is None
        assert store.items(store.tables.main) == []


class TestStreaks:
    def _record(self, dal, uid, *days):
        async def scenario():
            await dal.users.create_user(UserCreate(uid=uid))
            result = None
            for day in days:
                result = await dal.streaks.record_entry(uid, day)
            return result, await dal.streaks.get_streak(uid)

        return run(scenario())

    def test_consecutive_days_extend(self, dal):
        _, streak = self._record(dal, "s1", "2024-03-01", "2024-03-02", "2024-03-03")
        assert streak["currentStreak"] == 3
        assert streak["longestStreak"] == 3
        assert streak["streakStartDate"] == "2024-03-01"
        assert streak["GSI5SK"] == "0000000003"

    def test_gap_resets_but_keeps_longest(self, dal):
        _, streak = self._record(dal, "s2", "2024-03-01", "2024-03-02", "2024-03-05")
        assert streak["currentStreak"] == 1
        assert streak["longestStreak"] == 2
        assert streak["streakStartDate"] == "2024-03-05"

    def test_same_or_earlier_day_is_ignored(self, dal):
        result, streak = self._record(dal, "s3", "2024-03-02", "2024-03-02", "2024-03-01")
        assert result is None
        assert streak["currentStreak"] == 1
        assert streak["lastEntryDate"] == "2024-03-02"

    def test_friends_streaks_sorted(self, dal):
        async def scenario():
            for uid in ("f1", "f2"):
                await dal.users.create_user(UserCreate(uid=uid, username=f"{uid}name"))
            await dal.streaks.record_entry("f1", "2024-01-01")
            await dal.streaks.record_entry("f2", "2024-01-01")
            await dal.streaks.record_entry("f2", "2024-01-02")
            return await dal.streaks.get_friends_streaks(["f1", "f2", "ghost"])

        friends = run(scenario())
        assert [f["uid"] for f in friends] == ["f2", "f1"]
        assert friends[0]["currentStreak"] == 2

    def test_unknown_user_streak_is_empty(self, dal):
        assert run(dal.streaks.get_streak("nobody"))["currentStreak"] == 0


class TestConnections:
    def test_request_accept_lists_both_sides(self, dal, make_user):
        async def scenario():
            await make_user("a")
            await make_user("b")
            await dal.connections.request("a", "b")
            pending = await dal.connections.get_connections("b", "pending")
            await dal.connections.accept("a", "b")
            return (
                pending,
                await dal.connections.friend_uids("a"),
                await dal.connections.friend_uids("b"),
            )

        pending, a_friends, b_friends = run(scenario())
        assert len(pending) == 1 and pending[0]["isIncoming"] is True
        assert a_friends == ["b"]
        assert b_friends == ["a"]

    def test_accept_invalidates_cached_lists(self, dal, cache, make_user):
        async def scenario():
            await make_user("a")
            await make_user("b")
            await dal.connections.request("a", "b")
            await dal.connections.get_connections("a", "accepted")
            await cache.wait_pending()
            await dal.connections.accept("a", "b")
            return await dal.connections.get_connections("a", "accepted")

        assert len(run(scenario())) == 1

    def test_self_connection_rejected(self, dal, make_user):
        async def scenario():
            await make_user("a")
            await dal.connections.request("a", "a")

        with pytest.raises(InvalidInputError):
            run(scenario())

    def test_request_to_unknown_user(self, dal, make_user):
        async def scenario():
            await make_user("a")
            await dal.connections.request("a", "ghost")

        with pytest.raises(NotFoundError):
            run(scenario())

    def test_accept_missing_request(self, dal):
        with pytest.raises(NotFoundError):
            run(dal.connections.accept("a", "b"))

    def test_invalid_status(self, dal):
        with pytest.raises(InvalidInputError):
            run(dal.connections.get_connections("a", "blocked"))

    def test_remove(self, dal, store, make_user):
        async def scenario():
            await make_user("a")
            await make_user("b")
            await dal.connections.request("a", "b")
            await dal.connections.decline("a", "b")

        run(scenario())
        assert store.find(store.tables.main, "CONNECTION#") == []

    def test_friends_streaks_via_connections(self, dal, make_user):
        async def scenario():
            await make_user("a")
            await make_user("b")
            await dal.connections.request("a", "b")
            await dal.connections.accept("a", "b")
            await dal.streaks.record_entry("b", "2024-05-01")
            return await dal.friends_streaks("a")

        board = run(scenario())
        assert [f["uid"] for f in board] == ["b"]


class TestInvitesAndPartnerships:
    def test_redeem_invite_creates_request(self, dal, make_user):
        async def scenario():
            await make_user("host")
            await make_user("guest")
            invite = await dal.invites.create_invite("host")
            await dal.invites.redeem_invite(invite["inviteToken"], "guest")
            return await dal.connections.get_connections("guest", "pending")

        pending = run(scenario())
        assert pending[0]["requesterUid"] == "host"

    def test_invite_and_email_lookups_share_index_without_crossing(self, dal, make_user):
        async def scenario():
            await make_user("host")
            invite = await dal.invites.create_invite("host")
            return (
                invite,
                await dal.invites.get_invite(invite["inviteToken"]),
                await dal.invites.get_invite("host@example.com"),
                await dal.users.get_user_by_email("host@example.com"),
            )

        invite, found, by_email_as_token, profile = run(scenario())
        assert found["entityType"] == "INVITE"
        assert found["inviteId"] == invite["inviteId"]
        assert by_email_as_token is None
        assert profile["SK"] == "PROFILE"

    def test_unknown_invite(self, dal):
        with pytest.raises(NotFoundError):
            run(dal.invites.redeem_invite("nope", "guest"))

    def test_partnership_lifecycle(self, dal):
        async def scenario():
            await dal.partnerships.request("a", "b")
            pending = await dal.partnerships.list_partnerships("b", "pending")
            await dal.partnerships.accept("b", "a")
            active = await dal.partnerships.list_partnerships("a")
            await dal.partnerships.end("a", "b")
            return pending, active, await dal.partnerships.list_partnerships("a")

        pending, active, after = run(scenario())
        assert len(pending) == 1
        assert active[0]["status"] == "active"
        assert after == []

    def test_self_partnership_rejected(self, dal):
        with pytest.raises(InvalidInputError):
            run(dal.partnerships.request("a", "a"))


class TestPagedGraphReads:
    def test_connections_and_partnerships_span_pages(self, dal, store, make_user):
        async def seed():
            for uid in ("a", "b", "c", "d"):
                await make_user(uid)
            for other in ("b", "c", "d"):
                await dal.connections.request("a", other)
                await dal.connections.accept("a", other)
            for other in ("b", "c"):
                await dal.partnerships.request("a", other)
                await dal.partnerships.accept(other, "a")

        async def read():
            return (
                await dal.connections.friend_uids("a"),
                await dal.partnerships.list_partnerships("a"),
            )

        run(seed())
        store.page_size = 1
        friends, partners = run(read())
        assert sorted(friends) == ["b", "c", "d"]
        assert sorted(p["partnerUid"] for p in partners) == ["b", "c"]
