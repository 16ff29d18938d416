"""
Journal entries (Content table).

Entries sort under their owner as SK=ENTRY#{date}#{entryId}; GSI3 finds an
entry by id alone, GSI4 groups entries by trip. Deletes are soft
(`isDeleted=true`) so the stream keeps a MODIFY rather than a REMOVE.
"""
import logging
from typing import Optional

from daybyday.db import keys
from daybyday.db.base import Repository, check_limit, now_iso, require, require_id
from daybyday.db.streaks import StreakRepository
from daybyday.errors import NotFoundError
from daybyday.schemas import EntryCreate, EntryUpdate
from daybyday.ulid import new_id

logger = logging.getLogger(__name__)

# Upper bound for an SK range ending on a given date
_MAX_ID_SUFFIX = "Z" * 26
_LAST_DAY = "9999-12-31"

ENTRY_FIELDS = {
    "title": "title",
    "text": "text",
    "image_url": "imageUrl",
    "latitude": "latitude",
    "longitude": "longitude",
    "location_name": "locationName",
}


class EntryRepository(Repository):
    def __init__(self, store, cache, streaks: StreakRepository) -> None:
        super().__init__(store, cache)
        self.streaks = streaks

    async def create_entry(self, owner_uid: str, data: EntryCreate) -> dict:
        require(owner_uid, "owner_uid")
        if data.trip_id:
            require_id(data.trip_id, "trip_id")
        if data.prompt_id:
            require_id(data.prompt_id, "prompt_id")

        entry_id = new_id()
        day = data.date.isoformat()
        now = now_iso()
        entry = {
            "PK": keys.user_pk(owner_uid),
            "SK": f"ENTRY#{day}#{entry_id}",
            "GSI3PK": keys.entry_pk(entry_id),
            "GSI4PK": keys.trip_pk(data.trip_id) if data.trip_id else None,
            "GSI4SK": f"ENTRY#{day}" if data.trip_id else None,
            "GSI5PK": "ALL_ENTRIES",
            "GSI5SK": day,
            "entityType": "ENTRY",
            "entryId": entry_id,
            "firebaseUid": owner_uid,
            "date": day,
            "title": data.title,
            "text": data.text,
            "tripId": data.trip_id,
            "promptId": data.prompt_id,
            "clientId": data.client_id,
            "imageUrl": data.image_url,
            "latitude": data.latitude,
            "longitude": data.longitude,
            "locationName": data.location_name,
            "isDeleted": False,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.store.put(self.tables.content, entry)
        await self.streaks.record_entry(owner_uid, day)
        await self.cache.delete(f"entry-count:{owner_uid}")

        logger.info("Entry %s created for %s", entry_id, owner_uid)
        return {k: v for k, v in entry.items() if v is not None}

    async def list_entries(
        self,
        uid: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 50,
    ) -> list[dict]:
        """Newest first; dates are inclusive YYYY-MM-DD bounds."""
        require(uid, "uid")
        check_limit(limit)
        low = f"ENTRY#{start_date}" if start_date else "ENTRY#"
        high = f"ENTRY#{end_date or _LAST_DAY}#{_MAX_ID_SUFFIX}"

        return await self.query_upto(
            self.tables.content, "PK", keys.user_pk(uid), limit,
            sk_range=(low, high),
            filters={"isDeleted": False},
            forward=False,
        )

    async def get_entry(self, entry_id: str) -> Optional[dict]:
        require_id(entry_id, "entry_id")

        async def load():
            page = await self.store.query(
                self.tables.content, "GSI3PK", keys.entry_pk(entry_id),
                index="GSI3-ByEntryId", filters={"isDeleted": False}, limit=1,
            )
            return page.items[0] if page.items else None

        return await self.cache.get_or_compute(
            f"entry:{entry_id}", load, self.cache.ttl.entry
        )

    async def require_entry(self, entry_id: str) -> dict:
        entry = await self.get_entry(entry_id)
        if not entry:
            raise NotFoundError("Entry", entry_id)
        return entry

    async def owned_entry(self, entry_id: str, owner_uid: str) -> dict:
        entry = await self.get_entry(entry_id)
        if not entry or entry.get("firebaseUid") != owner_uid:
            # Foreign entries are reported as missing, not forbidden.
            raise NotFoundError("Entry", entry_id)
        return entry

    async def count_entries(self, uid: str) -> int:
        require(uid, "uid")

        async def load():
            items = await self.query_all(
                self.tables.content, "PK", keys.user_pk(uid),
                sk_prefix="ENTRY#", filters={"isDeleted": False},
            )
            return len(items)

        return await self.cache.get_or_compute(
            f"entry-count:{uid}", load, self.cache.ttl.entry_counts
        )

    async def update_entry(self, entry_id: str, owner_uid: str, updates: EntryUpdate) -> dict:
        entry = await self.owned_entry(entry_id, owner_uid)
        fields = updates.model_dump(exclude_unset=True)
        changes = {ENTRY_FIELDS[name]: value for name, value in fields.items()}
        changes["updatedAt"] = now_iso()

        updated = await self.store.update(
            self.tables.content, {"PK": entry["PK"], "SK": entry["SK"]}, changes
        )
        await self.cache.invalidate_entry(entry_id)
        return updated

    async def delete_entry(self, entry_id: str, owner_uid: str) -> None:
        entry = await self.owned_entry(entry_id, owner_uid)
        await self.store.update(
            self.tables.content,
            {"PK": entry["PK"], "SK": entry["SK"]},
            {"isDeleted": True, "updatedAt": now_iso()},
        )
        await self.cache.invalidate_entry(entry_id)
        await self.cache.delete(f"entry-count:{owner_uid}")
