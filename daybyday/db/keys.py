"""
Partition / sort key builders for the four tables.

Main     PK=USER#{uid}     SK=PROFILE | STREAK | CONNECTION#{uid} | PARTNERSHIP#{uid} | INVITE#{id}
Content  PK=USER#{uid}     SK=ENTRY#{date}#{id} | TRIP#{id}
         PK=ENTRY#{id}     SK=SHARE#{uid} | PUBLICSHARE#{id}
         PK=TRIP#{id}      SK=SHARE#{uid}
         PK=SYSTEM|USER#   SK=PROMPT#{id}
Social   PK=ENTRY#{id}     SK=REACTION#{uid}#{emoji} | COMMENT#{ts}#{id}
                              | COUNT#REACTION#{emoji} | COUNT#COMMENT | EVENT#{eventID}
Feed     PK=USER#{uid}     SK=FEED#{ts}#{type}#{id}

GSI2 on Main is a shared lookup index (GSI2-ByLookup): its partition key is
EMAIL#{lower} on profiles and INVITE#{token} on invites. The prefix keeps the
two key spaces apart.
"""


def user_pk(uid: str) -> str:
    return f"USER#{uid}"


def entry_pk(entry_id: str) -> str:
    return f"ENTRY#{entry_id}"


def trip_pk(trip_id: str) -> str:
    return f"TRIP#{trip_id}"


def profile_key(uid: str) -> dict:
    return {"PK": user_pk(uid), "SK": "PROFILE"}


def streak_key(uid: str) -> dict:
    return {"PK": user_pk(uid), "SK": "STREAK"}


def connection_key(uid: str, other_uid: str) -> dict:
    return {"PK": user_pk(uid), "SK": f"CONNECTION#{other_uid}"}


def partnership_key(uid: str, partner_uid: str) -> dict:
    return {"PK": user_pk(uid), "SK": f"PARTNERSHIP#{partner_uid}"}


def entry_share_key(entry_id: str, uid: str) -> dict:
    return {"PK": entry_pk(entry_id), "SK": f"SHARE#{uid}"}


def trip_share_key(trip_id: str, uid: str) -> dict:
    return {"PK": trip_pk(trip_id), "SK": f"SHARE#{uid}"}


def reaction_key(entry_id: str, uid: str, emoji: str) -> dict:
    return {"PK": entry_pk(entry_id), "SK": f"REACTION#{uid}#{emoji}"}


def reaction_count_key(entry_id: str, emoji: str) -> dict:
    return {"PK": entry_pk(entry_id), "SK": f"COUNT#REACTION#{emoji}"}


def comment_count_key(entry_id: str) -> dict:
    return {"PK": entry_pk(entry_id), "SK": "COUNT#COMMENT"}


def event_marker_key(entry_id: str, event_id: str) -> dict:
    return {"PK": entry_pk(entry_id), "SK": f"EVENT#{event_id}"}
