"""
Per-entity reactions to change records.

Aggregate counts go through DynamoStore.add_once keyed on the stream
eventID, so a redelivered record never counts twice. Feed writes use a
sort key derived from the source record and are simply repeated.
"""
import logging
import time
from typing import Optional

from daybyday.config import Settings
from daybyday.db import DataAccessLayer, keys
from daybyday.db.base import now_iso
from daybyday.stream_processor.records import ChangeRecord, EntityType, EventName

logger = logging.getLogger(__name__)


def truncate(text: Optional[str], max_length: int) -> Optional[str]:
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class ChangeHandlers:
    def __init__(self, dal: DataAccessLayer, settings: Settings) -> None:
        self.store = dal.store
        self.cache = dal.cache
        self.entries = dal.entries
        self.feed = dal.feed
        self.tables = dal.store.tables
        self.settings = settings
        self._routes = {
            EntityType.REACTION: self.on_reaction,
            EntityType.COMMENT: self.on_comment,
            EntityType.ENTRY_SHARE: self.on_entry_share,
            EntityType.TRIP_SHARE: self.on_trip_share,
        }

    async def dispatch(self, record: ChangeRecord) -> None:
        await self._routes[record.entity_type](record)

    # ─────────────────────── Helpers ──────────────────────────────────────

    async def _apply_count(
        self, record: ChangeRecord, entry_id: str, key: dict, amount: int, attrs: dict
    ) -> bool:
        marker = {
            **keys.event_marker_key(entry_id, record.event_id),
            "entityType": "EVENT_MARKER",
            "expiresAt": int(time.time()) + self.settings.stream_dedup_ttl,
        }
        applied = await self.store.add_once(
            self.tables.social,
            marker=marker,
            key=key,
            attribute="count",
            amount=amount,
            attrs={"entityType": "AGGREGATE_COUNT", "entryId": entry_id,
                   "updatedAt": now_iso(), **attrs},
        )
        if not applied:
            logger.info("Event %s already applied, skipping count", record.event_id)
        elif amount < 0:
            await self.store.delete_if_at_most(self.tables.social, key, "count", 0)
        return applied

    async def _entry_owner(self, image: dict) -> Optional[str]:
        owner = image.get("entryOwnerUid")
        if owner:
            return owner
        entry = await self.entries.get_entry(image["entryId"])
        return entry.get("firebaseUid") if entry else None

    # ─────────────────────── Reactions ────────────────────────────────────

    async def on_reaction(self, record: ChangeRecord) -> None:
        image = record.image
        entry_id, emoji = image["entryId"], image["emoji"]

        if record.event_name == EventName.INSERT:
            amount = 1
        elif record.event_name == EventName.REMOVE:
            amount = -1
        else:
            return

        await self._apply_count(
            record, entry_id, keys.reaction_count_key(entry_id, emoji), amount, {"emoji": emoji}
        )
        await self.cache.delete(f"reaction-count:{entry_id}")
        await self.cache.delete(f"reactions:{entry_id}")

        if record.event_name == EventName.INSERT:
            await self.feed.put_activity({
                "type": "REACTION",
                "actorUid": image.get("reactorUid"),
                "actorUsername": image.get("reactorUsername"),
                "actorFirstName": image.get("reactorFirstName"),
                "entryId": entry_id,
                "emoji": emoji,
                "sourceId": image.get("reactionId"),
                "targetUid": await self._entry_owner(image),
                "createdAt": image.get("createdAt"),
            })

    # ─────────────────────── Comments ─────────────────────────────────────

    async def on_comment(self, record: ChangeRecord) -> None:
        image = record.image
        entry_id = image["entryId"]
        old, new = record.old_image or {}, record.new_image or {}

        amount = 0
        notify = False
        if record.event_name == EventName.INSERT:
            if not new.get("isDeleted"):
                amount, notify = 1, True
        elif record.event_name == EventName.REMOVE:
            amount = 0 if old.get("isDeleted") else -1
        elif new.get("isDeleted") and not old.get("isDeleted"):
            amount = -1
        elif old.get("isDeleted") and not new.get("isDeleted"):
            amount, notify = 1, True

        if amount:
            await self._apply_count(
                record, entry_id, keys.comment_count_key(entry_id), amount, {}
            )
        await self.cache.delete(f"comment-count:{entry_id}")
        await self.cache.delete(f"comments:{entry_id}")

        if notify:
            await self.feed.put_activity({
                "type": "COMMENT",
                "actorUid": new.get("commenterUid"),
                "actorUsername": new.get("commenterUsername"),
                "actorFirstName": new.get("commenterFirstName"),
                "entryId": entry_id,
                "commentId": new.get("commentId"),
                "commentText": truncate(new.get("commentText"), self.settings.feed_preview_length),
                "sourceId": new.get("commentId"),
                "targetUid": await self._entry_owner(new),
                "createdAt": new.get("createdAt"),
            })

    # ─────────────────────── Shares ───────────────────────────────────────

    async def on_entry_share(self, record: ChangeRecord) -> None:
        if record.event_name != EventName.INSERT:
            return
        share = record.new_image
        await self.feed.put_activity({
            "type": "ENTRY_SHARE",
            "actorUid": share.get("ownerUid"),
            "entryId": share.get("entryId"),
            "entryTitle": share.get("entryTitle") or "Untitled",
            "sourceId": share.get("shareId"),
            "targetUid": share.get("sharedWithUid"),
            "createdAt": share.get("sharedAt"),
        })

    async def on_trip_share(self, record: ChangeRecord) -> None:
        if record.event_name != EventName.INSERT:
            return
        share = record.new_image
        await self.feed.put_activity({
            "type": "TRIP_SHARE",
            "actorUid": share.get("ownerUid"),
            "tripId": share.get("tripId"),
            "tripTitle": share.get("tripTitle"),
            "sourceId": share.get("shareId"),
            "targetUid": share.get("sharedWithUid"),
            "createdAt": share.get("sharedAt"),
        })
