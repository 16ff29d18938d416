"""
Reactions and comments (Social table, PK=ENTRY#{entryId}).

Source records:
  REACTION#{reactorUid}#{emoji}   one per user and emoji
  COMMENT#{createdAt}#{commentId} soft-deleted via isDeleted

Aggregates (COUNT#REACTION#{emoji}, COUNT#COMMENT) are maintained
asynchronously by the stream processor, so reads may briefly lag the
source records. Readers clamp negative counts to 0 and fall back to
counting source records when no aggregate exists yet.
"""
import logging

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require, require_id
from daybyday.db.entries import EntryRepository
from daybyday.db.users import UserRepository
from daybyday.errors import ConflictError, InvalidInputError, NotFoundError
from daybyday.schemas import CommentCreate
from daybyday.ulid import new_id

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


class SocialRepository(Repository):
    def __init__(self, store, cache, users: UserRepository, entries: EntryRepository) -> None:
        super().__init__(store, cache)
        self.users = users
        self.entries = entries

    # ─────────────────────── Reactions ────────────────────────────────────

    async def add_reaction(self, entry_id: str, reactor_uid: str, emoji: str) -> dict:
        require_id(entry_id, "entry_id")
        require(emoji, "emoji")
        entry = await self.entries.require_entry(entry_id)
        reactor = await self.users.require_user(reactor_uid)

        now = now_iso()
        reaction = {
            **keys.reaction_key(entry_id, reactor_uid, emoji),
            "GSI1PK": keys.user_pk(reactor_uid),
            "GSI1SK": f"REACTION#{now}",
            "entityType": "REACTION",
            "reactionId": new_id(),
            "entryId": entry_id,
            "entryOwnerUid": entry["firebaseUid"],
            "reactorUid": reactor_uid,
            "reactorUsername": reactor.get("username"),
            "reactorFirstName": reactor.get("firstName"),
            "emoji": emoji,
            "createdAt": now,
        }
        try:
            await self.store.put(self.tables.social, reaction, if_absent=True)
        except ConflictError:
            raise ConflictError("Reaction already exists.")
        await self.cache.delete(f"reactions:{entry_id}")
        return {k: v for k, v in reaction.items() if v is not None}

    async def remove_reaction(self, entry_id: str, reactor_uid: str, emoji: str) -> None:
        require_id(entry_id, "entry_id")
        require(reactor_uid, "reactor_uid")
        removed = await self.store.delete(
            self.tables.social, keys.reaction_key(entry_id, reactor_uid, emoji)
        )
        if not removed:
            raise NotFoundError("Reaction", f"{entry_id}/{emoji}")
        await self.cache.delete(f"reactions:{entry_id}")

    async def _reactions(self, entry_id: str) -> list[dict]:
        return await self.query_all(
            self.tables.social, "PK", keys.entry_pk(entry_id), sk_prefix="REACTION#"
        )

    async def list_reactions(self, entry_id: str) -> list[dict]:
        require_id(entry_id, "entry_id")
        return await self.cache.get_or_compute(
            f"reactions:{entry_id}",
            lambda: self._reactions(entry_id),
            self.cache.ttl.reaction_counts,
        )

    async def reaction_counts(self, entry_id: str) -> dict[str, int]:
        """Emoji → count, from the aggregate items when present."""
        require_id(entry_id, "entry_id")

        async def load():
            aggregates = await self.query_all(
                self.tables.social, "PK", keys.entry_pk(entry_id),
                sk_prefix="COUNT#REACTION#",
            )
            if aggregates:
                return {
                    item["emoji"]: item.get("count", 0)
                    for item in aggregates
                    if item.get("count", 0) > 0
                }
            return _tally(await self._reactions(entry_id))

        return await self.cache.get_or_compute(
            f"reaction-count:{entry_id}", load, self.cache.ttl.reaction_counts
        )

    # ─────────────────────── Comments ─────────────────────────────────────

    async def add_comment(self, entry_id: str, commenter_uid: str, data: CommentCreate) -> dict:
        require_id(entry_id, "entry_id")
        text = (data.text or "").strip()
        if not text:
            raise InvalidInputError("text", "must not be empty")
        if len(text) > MAX_COMMENT_LENGTH:
            raise InvalidInputError("text", f"must be at most {MAX_COMMENT_LENGTH} characters")
        if data.parent_comment_id:
            require_id(data.parent_comment_id, "parent_comment_id")

        entry = await self.entries.require_entry(entry_id)
        commenter = await self.users.require_user(commenter_uid)

        comment_id = new_id()
        now = now_iso()
        comment = {
            "PK": keys.entry_pk(entry_id),
            "SK": f"COMMENT#{now}#{comment_id}",
            "GSI2PK": keys.user_pk(commenter_uid),
            "GSI2SK": f"COMMENT#{now}",
            "entityType": "COMMENT",
            "commentId": comment_id,
            "entryId": entry_id,
            "entryOwnerUid": entry["firebaseUid"],
            "commenterUid": commenter_uid,
            "commenterUsername": commenter.get("username"),
            "commenterFirstName": commenter.get("firstName"),
            "parentCommentId": data.parent_comment_id,
            "commentText": text,
            "isDeleted": False,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.store.put(self.tables.social, comment)
        await self.cache.delete(f"comments:{entry_id}")
        return {k: v for k, v in comment.items() if v is not None}

    async def _comments(self, entry_id: str) -> list[dict]:
        return await self.query_all(
            self.tables.social, "PK", keys.entry_pk(entry_id),
            sk_prefix="COMMENT#", filters={"isDeleted": False},
        )

    async def list_comments(self, entry_id: str) -> list[dict]:
        """Live comments, oldest first."""
        require_id(entry_id, "entry_id")
        return await self.cache.get_or_compute(
            f"comments:{entry_id}",
            lambda: self._comments(entry_id),
            self.cache.ttl.comment_counts,
        )

    async def delete_comment(self, entry_id: str, comment_id: str, commenter_uid: str) -> None:
        require_id(entry_id, "entry_id")
        require_id(comment_id, "comment_id")
        comment = next(
            (
                c for c in await self._comments(entry_id)
                if c["commentId"] == comment_id and c.get("commenterUid") == commenter_uid
            ),
            None,
        )
        if comment is None:
            raise NotFoundError("Comment", comment_id)

        await self.store.update(
            self.tables.social,
            {"PK": comment["PK"], "SK": comment["SK"]},
            {"isDeleted": True, "updatedAt": now_iso()},
        )
        await self.cache.delete(f"comments:{entry_id}")

    async def comment_count(self, entry_id: str) -> int:
        require_id(entry_id, "entry_id")

        async def load():
            aggregate = await self.store.get(self.tables.social, keys.comment_count_key(entry_id))
            if aggregate is not None:
                return max(0, aggregate.get("count", 0))
            return len(await self._comments(entry_id))

        return await self.cache.get_or_compute(
            f"comment-count:{entry_id}", load, self.cache.ttl.comment_counts
        )

    # ─────────────────────── Reconciliation ───────────────────────────────

    async def rebuild_counts(self, entry_id: str) -> dict:
        """
        Recount reactions and live comments from the source records and
        overwrite the aggregate items. Used to repair drift; event markers
        are left untouched.
        """
        require_id(entry_id, "entry_id")
        reactions = _tally(await self._reactions(entry_id))
        comments = len(await self._comments(entry_id))
        stale = await self.query_all(
            self.tables.social, "PK", keys.entry_pk(entry_id), sk_prefix="COUNT#REACTION#"
        )

        now = now_iso()
        puts = [
            {
                **keys.reaction_count_key(entry_id, emoji),
                "entityType": "AGGREGATE_COUNT",
                "entryId": entry_id,
                "emoji": emoji,
                "count": count,
                "updatedAt": now,
            }
            for emoji, count in reactions.items()
        ]
        puts.append({
            **keys.comment_count_key(entry_id),
            "entityType": "AGGREGATE_COUNT",
            "entryId": entry_id,
            "count": comments,
            "updatedAt": now,
        })
        deletes = [
            {"PK": item["PK"], "SK": item["SK"]}
            for item in stale
            if item.get("emoji") not in reactions
        ]
        await self.store.batch_write(self.tables.social, puts=puts, deletes=deletes)
        await self.cache.invalidate_entry(entry_id)

        logger.info("Rebuilt counts for entry %s: %s reactions, %d comments",
                    entry_id, sum(reactions.values()), comments)
        return {"reactions": reactions, "comments": comments}


def _tally(reactions: list[dict]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for reaction in reactions:
        counts[reaction["emoji"]] = counts.get(reaction["emoji"], 0) + 1
    return counts
