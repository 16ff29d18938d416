"""Trips (Content table): PK=USER#{owner}, SK=TRIP#{id}, GSI4PK=TRIP#{id}."""
from typing import Optional

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require, require_id
from daybyday.errors import NotFoundError
from daybyday.schemas import TripCreate, TripUpdate
from daybyday.ulid import new_id

TRIP_FIELDS = {
    "title": "title",
    "description": "description",
    "destination": "destination",
    "start_date": "startDate",
    "end_date": "endDate",
    "cover_image_url": "coverImageUrl",
}


def _iso(value):
    return value.isoformat() if hasattr(value, "isoformat") else value


class TripRepository(Repository):
    async def create_trip(self, owner_uid: str, data: TripCreate) -> dict:
        require(owner_uid, "owner_uid")
        trip_id = new_id()
        now = now_iso()
        trip = {
            "PK": keys.user_pk(owner_uid),
            "SK": f"TRIP#{trip_id}",
            "GSI4PK": keys.trip_pk(trip_id),
            "GSI4SK": "TRIP",
            "entityType": "TRIP",
            "tripId": trip_id,
            "ownerUid": owner_uid,
            "title": data.title,
            "description": data.description,
            "destination": data.destination,
            "startDate": _iso(data.start_date),
            "endDate": _iso(data.end_date),
            "coverImageUrl": data.cover_image_url,
            "isActive": True,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.store.put(self.tables.content, trip)
        return {k: v for k, v in trip.items() if v is not None}

    async def list_trips(self, uid: str) -> list[dict]:
        require(uid, "uid")
        return await self.query_all(
            self.tables.content, "PK", keys.user_pk(uid),
            sk_prefix="TRIP#", filters={"isActive": True},
        )

    async def get_trip(self, trip_id: str) -> Optional[dict]:
        require_id(trip_id, "trip_id")
        trips = await self.query_all(
            self.tables.content, "GSI4PK", keys.trip_pk(trip_id),
            index="GSI4-ByTripId",
            filters={"entityType": "TRIP", "isActive": True},
        )
        return trips[0] if trips else None

    async def owned_trip(self, trip_id: str, owner_uid: str) -> dict:
        trip = await self.get_trip(trip_id)
        if not trip or trip.get("ownerUid") != owner_uid:
            raise NotFoundError("Trip", trip_id)
        return trip

    async def update_trip(self, trip_id: str, owner_uid: str, updates: TripUpdate) -> dict:
        trip = await self.owned_trip(trip_id, owner_uid)
        fields = updates.model_dump(exclude_unset=True)
        changes = {TRIP_FIELDS[name]: _iso(value) for name, value in fields.items()}
        changes["updatedAt"] = now_iso()
        return await self.store.update(
            self.tables.content, {"PK": trip["PK"], "SK": trip["SK"]}, changes
        )

    async def delete_trip(self, trip_id: str, owner_uid: str) -> None:
        trip = await self.owned_trip(trip_id, owner_uid)
        await self.store.update(
            self.tables.content,
            {"PK": trip["PK"], "SK": trip["SK"]},
            {"isActive": False, "updatedAt": now_iso()},
        )

    async def list_trip_entries(self, trip_id: str) -> list[dict]:
        require_id(trip_id, "trip_id")
        return await self.query_all(
            self.tables.content, "GSI4PK", keys.trip_pk(trip_id),
            index="GSI4-ByTripId", sk_name="GSI4SK", sk_prefix="ENTRY#",
            filters={"entityType": "ENTRY", "isDeleted": False},
            forward=False,
        )
