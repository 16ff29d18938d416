"""Typed view of a DynamoDB Streams change record."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from boto3.dynamodb.types import TypeDeserializer

from daybyday.clients.dynamodb_client import to_plain

_deserializer = TypeDeserializer()


class EventName(str, Enum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class EntityType(str, Enum):
    REACTION = "REACTION"
    COMMENT = "COMMENT"
    ENTRY_SHARE = "ENTRY_SHARE"
    TRIP_SHARE = "TRIP_SHARE"


class MalformedRecordError(ValueError):
    pass


def unmarshal(image: Optional[dict]) -> Optional[dict]:
    """Wire-format attribute map → plain dict (numbers become int/float)."""
    if not image:
        return None
    return to_plain({k: _deserializer.deserialize(v) for k, v in image.items()})


@dataclass
class ChangeRecord:
    event_id: str
    event_name: EventName
    new_image: Optional[dict]
    old_image: Optional[dict]

    @classmethod
    def from_stream(cls, raw: dict) -> "ChangeRecord":
        try:
            event_name = EventName(raw.get("eventName"))
        except ValueError:
            raise MalformedRecordError(f"unknown eventName {raw.get('eventName')!r}")
        body = raw.get("dynamodb") or {}
        record = cls(
            event_id=raw.get("eventID") or "",
            event_name=event_name,
            new_image=unmarshal(body.get("NewImage")),
            old_image=unmarshal(body.get("OldImage")),
        )
        if not record.event_id:
            raise MalformedRecordError("record has no eventID")
        if record.image is None:
            raise MalformedRecordError(f"record {record.event_id} carries no image")
        return record

    @property
    def image(self) -> Optional[dict]:
        """Post-image when present, otherwise the pre-image."""
        return self.new_image if self.new_image is not None else self.old_image

    @property
    def raw_entity_type(self) -> Optional[str]:
        return (self.image or {}).get("entityType")

    @property
    def entity_type(self) -> Optional[EntityType]:
        try:
            return EntityType(self.raw_entity_type)
        except ValueError:
            return None
