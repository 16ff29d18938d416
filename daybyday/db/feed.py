"""
Activity feed (Feed table): PK=USER#{recipient}, SK=FEED#{ts}#{type}#{id}.

Only the stream processor writes here. The sort key is derived from the
source event, so a redelivered record overwrites its own feed item.
"""
import logging
from typing import Optional

from daybyday.clients.dynamodb_client import decode_cursor, encode_cursor
from daybyday.db import keys
from daybyday.db.base import Repository, check_limit, now_iso, require

logger = logging.getLogger(__name__)

ACTIVITY_FIELDS = (
    "actorUid", "actorUsername", "actorFirstName",
    "entryId", "tripId", "emoji", "commentId", "commentText",
    "entryTitle", "tripTitle",
)


class FeedRepository(Repository):
    async def get_feed(self, uid: str, limit: int = 20, cursor: Optional[str] = None) -> dict:
        """Newest first. Returns {"items", "cursor"}; cursor is None on the last page."""
        require(uid, "uid")
        check_limit(limit)

        async def load():
            page = await self.store.query(
                self.tables.feed, "PK", keys.user_pk(uid),
                sk_prefix="FEED#", forward=False, limit=limit,
                start_key=decode_cursor(cursor),
            )
            return {"items": page.items, "cursor": encode_cursor(page.last_key)}

        if cursor or limit != 20:
            return await load()
        return await self.cache.get_or_compute(f"feed:{uid}", load, self.cache.ttl.feed)

    async def put_activity(self, activity: dict) -> bool:
        """
        Write one feed item for activity["targetUid"].

        Returns False when there is nobody to notify: no target, or the
        actor acting on their own content.
        """
        target = activity.get("targetUid")
        actor = activity.get("actorUid")
        if not target or target == actor:
            logger.debug("Skipping feed activity %s (actor=%s target=%s)",
                         activity.get("type"), actor, target)
            return False

        timestamp = activity.get("createdAt") or now_iso()
        kind = activity["type"]
        source_id = activity.get("sourceId") or activity.get("entryId") or activity.get("tripId")
        item = {
            "PK": keys.user_pk(target),
            "SK": f"FEED#{timestamp}#{kind}#{source_id}",
            "entityType": "FEED_ITEM",
            "type": kind,
            "createdAt": timestamp,
        }
        item.update({name: activity.get(name) for name in ACTIVITY_FIELDS})
        await self.store.put(self.tables.feed, item)
        await self.cache.invalidate_feed(target)
        logger.info("Added %s activity to feed for %s", kind, target)
        return True
