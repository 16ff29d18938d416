"""
Journaling streaks (Main table, SK=STREAK).

GSI5PK=STREAKS / GSI5SK=zero-padded current streak gives a global
leaderboard ordering without a scan.
"""
import logging
from datetime import date
from typing import Optional

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require
from daybyday.errors import ConflictError

logger = logging.getLogger(__name__)

EMPTY_STREAK = {"currentStreak": 0, "longestStreak": 0, "lastEntryDate": None}


def _day(value: str) -> date:
    return date.fromisoformat(value[:10])


class StreakRepository(Repository):
    async def initialize(self, uid: str) -> None:
        try:
            await self.store.put(
                self.tables.main,
                {
                    **keys.streak_key(uid),
                    "GSI5PK": "STREAKS",
                    "GSI5SK": "0000000000",
                    "entityType": "STREAK",
                    "uid": uid,
                    "currentStreak": 0,
                    "longestStreak": 0,
                    "updatedAt": now_iso(),
                },
                if_absent=True,
            )
        except ConflictError:
            logger.debug("Streak for %s already initialised", uid)

    async def record_entry(self, uid: str, entry_date: str) -> Optional[dict]:
        """
        Fold a new entry date into the streak.

        Consecutive days extend the streak, a gap restarts it at 1, and
        entries on or before the last recorded day leave it unchanged.
        """
        streak = await self.store.get(self.tables.main, keys.streak_key(uid)) or {}
        day = _day(entry_date)
        last = streak.get("lastEntryDate")
        last_day = _day(last) if last else None

        if last_day is not None and day <= last_day:
            return None

        if last_day is not None and (day - last_day).days == 1:
            current = streak.get("currentStreak", 0) + 1
            started = streak.get("streakStartDate") or day.isoformat()
        else:
            current = 1
            started = day.isoformat()
        longest = max(streak.get("longestStreak", 0), current)

        updated = await self.store.update(
            self.tables.main,
            keys.streak_key(uid),
            {
                "GSI5PK": "STREAKS",
                "GSI5SK": str(current).zfill(10),
                "entityType": "STREAK",
                "uid": uid,
                "currentStreak": current,
                "longestStreak": longest,
                "lastEntryDate": day.isoformat(),
                "streakStartDate": started,
                "updatedAt": now_iso(),
            },
        )
        await self.cache.delete(f"streak:{uid}")
        return updated

    async def get_streak(self, uid: str) -> dict:
        require(uid, "uid")

        async def load():
            item = await self.store.get(self.tables.main, keys.streak_key(uid))
            return item or dict(EMPTY_STREAK)

        return await self.cache.get_or_compute(
            f"streak:{uid}", load, self.cache.ttl.streak
        )

    async def get_friends_streaks(self, friend_uids: list[str], limit: int = 20) -> list[dict]:
        if not friend_uids:
            return []

        lookup = []
        for fuid in friend_uids:
            lookup.append(keys.profile_key(fuid))
            lookup.append(keys.streak_key(fuid))
        items = await self.store.batch_get(self.tables.main, lookup)

        by_user: dict[str, dict] = {}
        for item in items:
            slot = by_user.setdefault(item.get("uid"), {})
            slot["profile" if item["SK"] == "PROFILE" else "streak"] = item

        friends = []
        for uid, parts in by_user.items():
            profile = parts.get("profile")
            if not profile:
                continue
            streak = parts.get("streak") or EMPTY_STREAK
            friends.append({
                "uid": uid,
                "username": profile.get("username"),
                "firstName": profile.get("firstName"),
                "lastName": profile.get("lastName"),
                "currentStreak": streak.get("currentStreak", 0),
                "longestStreak": streak.get("longestStreak", 0),
                "lastEntryDate": streak.get("lastEntryDate"),
            })
        friends.sort(key=lambda f: f["currentStreak"], reverse=True)
        return friends[:limit]
