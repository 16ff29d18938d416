"""
Reactions and comments on an entry. Aggregate counts are maintained by the
stream processor, so a count can trail a just-written reaction briefly.
"""
import asyncio

from fastapi import APIRouter, Depends, Response, status

from daybyday.api.deps import current_user, get_dal
from daybyday.db import DataAccessLayer
from daybyday.schemas import CommentCreate, ReactionCreate

router = APIRouter()


# ── Reactions ──────────────────────────────────────────────────────────────

@router.get("/{entry_id}/reactions")
async def list_reactions(
    entry_id: str,
    _: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    reactions, counts = await asyncio.gather(
        dal.social.list_reactions(entry_id),
        dal.social.reaction_counts(entry_id),
    )
    return {"reactions": reactions, "counts": counts}


@router.post("/{entry_id}/reactions", status_code=status.HTTP_201_CREATED)
async def add_reaction(
    entry_id: str,
    body: ReactionCreate,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    return await dal.social.add_reaction(entry_id, uid, body.emoji)


@router.delete("/{entry_id}/reactions/{emoji}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_reaction(
    entry_id: str,
    emoji: str,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    await dal.social.remove_reaction(entry_id, uid, emoji)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Comments ───────────────────────────────────────────────────────────────

@router.get("/{entry_id}/comments")
async def list_comments(
    entry_id: str,
    _: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    comments, count = await asyncio.gather(
        dal.social.list_comments(entry_id),
        dal.social.comment_count(entry_id),
    )
    return {"comments": comments, "count": count}


@router.post("/{entry_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    entry_id: str,
    body: CommentCreate,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    return await dal.social.add_comment(entry_id, uid, body)


@router.delete("/{entry_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    entry_id: str,
    comment_id: str,
    uid: str = Depends(current_user),
    dal: DataAccessLayer = Depends(get_dal),
):
    await dal.social.delete_comment(entry_id, comment_id, uid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
