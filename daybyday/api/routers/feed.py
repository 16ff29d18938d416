"""GET /feed — the caller's activity feed, newest first, cursor-paginated."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from daybyday.api.deps import current_user, get_dal
from daybyday.db import DataAccessLayer

router = APIRouter()


@router.get("")
async def get_feed(
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    return await dal.feed.get_feed(uid, limit, cursor)
