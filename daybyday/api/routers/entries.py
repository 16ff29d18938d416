"""
Journal entry endpoints:
  POST   /entries            — create an entry (updates the streak)
  GET    /entries            — list own entries, newest first
  GET    /entries/{id}       — fetch an own or shared entry
  PATCH  /entries/{id}       — edit an own entry
  DELETE /entries/{id}       — soft-delete an own entry
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from daybyday.api.deps import current_user, get_dal
from daybyday.db import DataAccessLayer
from daybyday.errors import NotFoundError
from daybyday.schemas import EntryCreate, EntryUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_entry(
    body: EntryCreate,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    return await dal.entries.create_entry(uid, body)


@router.get("")
async def list_entries(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    entries = await dal.entries.list_entries(
        uid,
        start_date.isoformat() if start_date else None,
        end_date.isoformat() if end_date else None,
        limit,
    )
    return {"entries": entries, "count": len(entries)}


@router.get("/{entry_id}")
async def get_entry(
    entry_id: str,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    entry = await dal.entries.get_entry(entry_id)
    if entry and entry.get("firebaseUid") == uid:
        return entry
    shared = await dal.shares.get_shared_entry(entry_id, uid)
    if not shared:
        raise NotFoundError("Entry", entry_id)
    return shared["entry"]


@router.patch("/{entry_id}")
async def update_entry(
    entry_id: str,
    body: EntryUpdate,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    return await dal.entries.update_entry(entry_id, uid, body)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: str,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    await dal.entries.delete_entry(entry_id, uid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
