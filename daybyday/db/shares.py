"""
Entry and trip sharing (Content table).

Private shares sit under the shared item (PK=ENTRY#|TRIP#, SK=SHARE#{uid})
and are indexed for the recipient on GSI1-BySharedWithUid. Their INSERT
events drive the recipient's activity feed, so each record carries an
explicit entityType.

Public share links live at SK=PUBLICSHARE#{id}; GSI2-ByPublicToken resolves
a link token back to its record.
"""
import asyncio
import logging
import secrets
from typing import Optional

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require, require_id
from daybyday.db.entries import EntryRepository
from daybyday.db.trips import TripRepository
from daybyday.errors import ConflictError, InvalidInputError, NotFoundError
from daybyday.ulid import new_id

logger = logging.getLogger(__name__)

TRIP_PERMISSIONS = ("view", "edit")


class ShareRepository(Repository):
    def __init__(self, store, cache, entries: EntryRepository, trips: TripRepository) -> None:
        super().__init__(store, cache)
        self.entries = entries
        self.trips = trips

    # ─────────────────────── Entry shares ─────────────────────────────────

    async def share_entry(self, entry_id: str, owner_uid: str, recipients: list[str]) -> list[dict]:
        entry = await self.entries.owned_entry(entry_id, owner_uid)
        recipients = list(dict.fromkeys(recipients))
        if not recipients:
            raise InvalidInputError("recipients", "at least one recipient required")
        for uid in recipients:
            require(uid, "recipients")
            if uid == owner_uid:
                raise InvalidInputError("recipients", "cannot share with yourself")

        now = now_iso()
        shares = []
        for uid in recipients:
            share_id = new_id()
            shares.append({
                **keys.entry_share_key(entry_id, uid),
                "GSI1PK": keys.user_pk(uid),
                "GSI1SK": f"ENTRYSHARE#{share_id}",
                "entityType": "ENTRY_SHARE",
                "shareId": share_id,
                "entryId": entry_id,
                "entryTitle": entry.get("title"),
                "ownerUid": owner_uid,
                "sharedWithUid": uid,
                "isRead": False,
                "sharedAt": now,
            })
        await self.store.batch_write(self.tables.content, puts=shares)
        logger.info("Entry %s shared with %d users", entry_id, len(shares))
        return [{k: v for k, v in s.items() if v is not None} for s in shares]

    async def entries_shared_with(self, uid: str) -> list[dict]:
        """Shares addressed to `uid`, each joined with its live entry."""
        require(uid, "uid")
        shares = await self.query_all(
            self.tables.content, "GSI1PK", keys.user_pk(uid),
            index="GSI1-BySharedWithUid", sk_name="GSI1SK", sk_prefix="ENTRYSHARE#",
            forward=False,
        )
        entries = await asyncio.gather(
            *[self.entries.get_entry(share["entryId"]) for share in shares]
        )
        return [
            {**share, "entry": entry}
            for share, entry in zip(shares, entries)
            if entry
        ]

    async def mark_share_read(self, entry_id: str, recipient_uid: str) -> None:
        require_id(entry_id, "entry_id")
        try:
            await self.store.update(
                self.tables.content,
                keys.entry_share_key(entry_id, recipient_uid),
                {"isRead": True},
                must_exist=True,
            )
        except ConflictError:
            raise NotFoundError("Share", entry_id)

    async def get_shared_entry(self, entry_id: str, viewer_uid: str) -> Optional[dict]:
        require_id(entry_id, "entry_id")
        require(viewer_uid, "viewer_uid")
        share = await self.store.get(
            self.tables.content, keys.entry_share_key(entry_id, viewer_uid)
        )
        if not share:
            return None
        entry = await self.entries.get_entry(entry_id)
        if not entry:
            return None
        return {**share, "entry": entry}

    # ─────────────────────── Trip shares ──────────────────────────────────

    async def share_trip(
        self, trip_id: str, owner_uid: str, recipient_uid: str, permission: str = "view"
    ) -> dict:
        require(recipient_uid, "recipient_uid")
        if permission not in TRIP_PERMISSIONS:
            raise InvalidInputError("permission", f"must be one of {TRIP_PERMISSIONS}")
        if recipient_uid == owner_uid:
            raise InvalidInputError("recipient_uid", "cannot share with yourself")
        trip = await self.trips.owned_trip(trip_id, owner_uid)

        share = {
            **keys.trip_share_key(trip_id, recipient_uid),
            "GSI1PK": keys.user_pk(recipient_uid),
            "GSI1SK": f"TRIPSHARE#{trip_id}",
            "entityType": "TRIP_SHARE",
            "shareId": new_id(),
            "tripId": trip_id,
            "tripTitle": trip.get("title"),
            "ownerUid": owner_uid,
            "sharedWithUid": recipient_uid,
            "permission": permission,
            "sharedAt": now_iso(),
        }
        await self.store.put(self.tables.content, share)
        return share

    async def trips_shared_with(self, uid: str) -> list[dict]:
        require(uid, "uid")
        shares = await self.query_all(
            self.tables.content, "GSI1PK", keys.user_pk(uid),
            index="GSI1-BySharedWithUid", sk_name="GSI1SK", sk_prefix="TRIPSHARE#",
        )
        trips = await asyncio.gather(
            *[self.trips.get_trip(share["tripId"]) for share in shares]
        )
        return [trip for trip in trips if trip]

    async def remove_trip_share(self, trip_id: str, owner_uid: str, recipient_uid: str) -> None:
        await self.trips.owned_trip(trip_id, owner_uid)
        await self.store.delete(
            self.tables.content, keys.trip_share_key(trip_id, recipient_uid)
        )

    # ─────────────────────── Public links ─────────────────────────────────

    async def _public_share_for_entry(self, entry_id: str) -> Optional[dict]:
        page = await self.store.query(
            self.tables.content, "PK", keys.entry_pk(entry_id),
            sk_prefix="PUBLICSHARE#", limit=1,
        )
        return page.items[0] if page.items else None

    async def create_public_share(self, entry_id: str, owner_uid: str) -> dict:
        """Return the entry's public link, creating it on first use."""
        await self.entries.owned_entry(entry_id, owner_uid)
        existing = await self._public_share_for_entry(entry_id)
        if existing:
            return {"token": existing["publicToken"], "shareId": existing["shareId"], "isNew": False}

        token = secrets.token_urlsafe(32)
        share_id = new_id()
        await self.store.put(self.tables.content, {
            "PK": keys.entry_pk(entry_id),
            "SK": f"PUBLICSHARE#{share_id}",
            "GSI2PK": f"TOKEN#{token}",
            "GSI2SK": keys.entry_pk(entry_id),
            "entityType": "PUBLIC_SHARE",
            "publicToken": token,
            "shareId": share_id,
            "entryId": entry_id,
            "ownerUid": owner_uid,
            "viewCount": 0,
            "createdAt": now_iso(),
        })
        return {"token": token, "shareId": share_id, "isNew": True}

    async def _share_by_token(self, token: str) -> Optional[dict]:
        require(token, "token")
        page = await self.store.query(
            self.tables.content, "GSI2PK", f"TOKEN#{token}",
            index="GSI2-ByPublicToken", limit=1,
        )
        return page.items[0] if page.items else None

    async def get_public_share(self, token: str) -> Optional[dict]:
        share = await self._share_by_token(token)
        if not share:
            return None
        entry = await self.entries.get_entry(share["entryId"])
        if not entry:
            return None
        return {**share, "entry": entry}

    async def record_public_view(self, token: str) -> int:
        share = await self._share_by_token(token)
        if not share:
            raise NotFoundError("Public share", token)
        updated = await self.store.increment(
            self.tables.content, {"PK": share["PK"], "SK": share["SK"]}, "viewCount"
        )
        return updated.get("viewCount", 0)

    async def delete_public_share(self, token: str, owner_uid: str) -> None:
        share = await self._share_by_token(token)
        if not share or share.get("ownerUid") != owner_uid:
            raise NotFoundError("Public share", token)
        await self.store.delete(self.tables.content, {"PK": share["PK"], "SK": share["SK"]})
