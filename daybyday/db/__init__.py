"""
Data access layer: one repository per entity group over a shared
DynamoStore and Cache.
"""
from daybyday.clients.dynamodb_client import DynamoStore
from daybyday.clients.redis_client import Cache
from daybyday.config import Settings
from daybyday.db.connections import ConnectionRepository, InviteRepository, PartnershipRepository
from daybyday.db.entries import EntryRepository
from daybyday.db.feed import FeedRepository
from daybyday.db.prompts import PromptRepository
from daybyday.db.shares import ShareRepository
from daybyday.db.social import SocialRepository
from daybyday.db.streaks import StreakRepository
from daybyday.db.trips import TripRepository
from daybyday.db.users import UserRepository


class DataAccessLayer:
    def __init__(self, store: DynamoStore, cache: Cache, settings: Settings) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings

        self.streaks = StreakRepository(store, cache)
        self.users = UserRepository(store, cache, self.streaks)
        self.connections = ConnectionRepository(store, cache, self.users)
        self.invites = InviteRepository(store, cache, self.connections)
        self.partnerships = PartnershipRepository(store, cache)
        self.entries = EntryRepository(store, cache, self.streaks)
        self.trips = TripRepository(store, cache)
        self.shares = ShareRepository(store, cache, self.entries, self.trips)
        self.prompts = PromptRepository(store, cache)
        self.social = SocialRepository(store, cache, self.users, self.entries)
        self.feed = FeedRepository(store, cache)

    async def friends_streaks(self, uid: str, limit: int = 20) -> list[dict]:
        """Streak leaderboard across `uid`'s accepted connections."""
        friends = await self.connections.friend_uids(uid)
        return await self.streaks.get_friends_streaks(friends, limit)


__all__ = ["DataAccessLayer"]
