"""
User profile operations (Main table).

Profiles live at PK=USER#{uid}, SK=PROFILE with two lookup indexes:
  GSI1-ByUsername  GSI1PK=USERNAME#{lower}
  GSI2-ByLookup    GSI2PK=EMAIL#{lower}  (shared with invites)
"""
import logging
from typing import Optional

from daybyday.clients.dynamodb_client import decode_cursor, encode_cursor
from daybyday.db import keys
from daybyday.db.base import Repository, check_limit, now_iso, require
from daybyday.db.streaks import StreakRepository
from daybyday.errors import ConflictError, NotFoundError
from daybyday.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

SEARCH_MAX_PAGES = 5


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else None


class UserRepository(Repository):
    def __init__(self, store, cache, streaks: StreakRepository) -> None:
        super().__init__(store, cache)
        self.streaks = streaks

    async def create_user(self, data: UserCreate) -> dict:
        now = now_iso()
        user = {
            **keys.profile_key(data.uid),
            "GSI1PK": f"USERNAME#{_lower(data.username)}" if data.username else None,
            "GSI2PK": f"EMAIL#{_lower(data.email)}" if data.email else None,
            "entityType": "USER",
            "uid": data.uid,
            "username": data.username,
            "usernameLower": _lower(data.username),
            "email": data.email,
            "emailLower": _lower(data.email),
            "firstName": data.first_name,
            "lastName": data.last_name,
            "phoneNumber": data.phone_number,
            "phoneVerified": False,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.store.put(self.tables.main, user, if_absent=True)
        except ConflictError:
            raise ConflictError(f"User {data.uid} already exists.")

        await self.streaks.initialize(data.uid)
        logger.info("Created user %s", data.uid)
        return {k: v for k, v in user.items() if v is not None}

    async def get_user(self, uid: str) -> Optional[dict]:
        require(uid, "uid")

        async def load():
            return await self.store.get(self.tables.main, keys.profile_key(uid))

        return await self.cache.get_or_compute(
            f"user:{uid}", load, self.cache.ttl.user_profile
        )

    async def require_user(self, uid: str) -> dict:
        user = await self.get_user(uid)
        if not user:
            raise NotFoundError("User", uid)
        return user

    async def get_user_by_username(self, username: str) -> Optional[dict]:
        require(username, "username")
        page = await self.store.query(
            self.tables.main, "GSI1PK", f"USERNAME#{username.lower()}",
            index="GSI1-ByUsername", limit=1,
        )
        return page.items[0] if page.items else None

    async def get_user_by_email(self, email: str) -> Optional[dict]:
        require(email, "email")
        page = await self.store.query(
            self.tables.main, "GSI2PK", f"EMAIL#{email.lower()}",
            index="GSI2-ByLookup", limit=1,
        )
        return page.items[0] if page.items else None

    async def update_profile(self, uid: str, updates: UserUpdate) -> dict:
        require(uid, "uid")
        fields = updates.model_dump(exclude_unset=True)
        changes: dict = {}
        if "username" in fields:
            changes["username"] = fields["username"]
            changes["usernameLower"] = _lower(fields["username"])
            changes["GSI1PK"] = f"USERNAME#{_lower(fields['username'])}" if fields["username"] else None
        if "email" in fields:
            changes["email"] = fields["email"]
            changes["emailLower"] = _lower(fields["email"])
            changes["GSI2PK"] = f"EMAIL#{_lower(fields['email'])}" if fields["email"] else None
        for name, attr in (
            ("first_name", "firstName"),
            ("last_name", "lastName"),
            ("phone_number", "phoneNumber"),
            ("phone_verified", "phoneVerified"),
        ):
            if name in fields:
                changes[attr] = fields[name]
        changes["updatedAt"] = now_iso()

        try:
            user = await self.store.update(
                self.tables.main, keys.profile_key(uid), changes, must_exist=True
            )
        except ConflictError:
            raise NotFoundError("User", uid)

        await self.cache.invalidate_user(uid)
        return user

    async def search_users(self, query: str, limit: int = 20) -> list[dict]:
        """Prefix match on lower-cased username or email."""
        require(query, "query")
        check_limit(limit)
        prefix = query.lower()

        found: dict[str, dict] = {}
        start_key = None
        for _ in range(SEARCH_MAX_PAGES):
            page = await self.store.scan(
                self.tables.main,
                filters={"SK": "PROFILE"},
                prefixes={"usernameLower": prefix, "emailLower": prefix},
                start_key=start_key,
            )
            for item in page.items:
                found.setdefault(item["uid"], item)
            start_key = page.last_key
            if len(found) >= limit or not start_key:
                break
        return list(found.values())[:limit]

    async def discover_users(
        self,
        limit: int = 20,
        cursor: Optional[str] = None,
        exclude_uid: Optional[str] = None,
    ) -> dict:
        check_limit(limit)
        start_key = decode_cursor(cursor)

        async def load():
            page = await self.store.scan(
                self.tables.main, filters={"SK": "PROFILE"},
                limit=limit, start_key=start_key,
            )
            return {"users": page.items, "cursor": encode_cursor(page.last_key)}

        if start_key is None:
            result = await self.cache.get_or_compute(
                f"discover-users:{limit}", load, self.cache.ttl.discover_users
            )
        else:
            result = await load()

        users = [u for u in result["users"] if u.get("uid") != exclude_uid]
        return {"users": users, "cursor": result["cursor"]}

    async def delete_account(self, uid: str) -> None:
        # Entries, connections and social records are left for an offline sweep.
        require(uid, "uid")
        await self.store.batch_write(
            self.tables.main,
            deletes=[keys.profile_key(uid), keys.streak_key(uid)],
        )
        await self.cache.invalidate_user(uid)
        logger.info("Deleted account %s", uid)
