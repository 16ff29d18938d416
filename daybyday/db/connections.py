"""
Social graph on the Main table: friend connections, invite links and
accountability partnerships.

Connections and partnerships are stored twice, once under each user's
partition, so either side can list theirs with a single query.
"""
import asyncio
import logging
import secrets

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require
from daybyday.db.users import UserRepository
from daybyday.errors import ConflictError, InvalidInputError, NotFoundError
from daybyday.ulid import new_id

logger = logging.getLogger(__name__)

CONNECTION_STATUSES = ("pending", "accepted")
PARTNERSHIP_STATUSES = ("pending", "active")


async def _set_status_both(repo: Repository, pair: tuple[dict, dict], status: str, entity: str) -> None:
    """Flip both mirrored records; a missing side means the pair doesn't exist."""
    changes = {"status": status, "updatedAt": now_iso()}
    try:
        await asyncio.gather(
            *[repo.store.update(repo.tables.main, key, changes, must_exist=True) for key in pair]
        )
    except ConflictError:
        raise NotFoundError(entity, pair[0]["SK"].split("#", 1)[1])


class ConnectionRepository(Repository):
    def __init__(self, store, cache, users: UserRepository) -> None:
        super().__init__(store, cache)
        self.users = users

    async def _invalidate(self, *uids: str) -> None:
        await asyncio.gather(
            *[self.cache.delete_pattern(f"connections:{uid}:*") for uid in uids]
        )

    async def request(self, requester_uid: str, target_uid: str) -> dict:
        require(requester_uid, "requester_uid")
        require(target_uid, "target_uid")
        if requester_uid == target_uid:
            raise InvalidInputError("target_uid", "cannot connect to yourself")

        requester, target = await asyncio.gather(
            self.users.require_user(requester_uid),
            self.users.require_user(target_uid),
        )
        now = now_iso()
        connection_id = new_id()
        connection = {
            **keys.connection_key(requester_uid, target_uid),
            "GSI3PK": keys.user_pk(requester_uid),
            "GSI3SK": f"CONNECTION#{connection_id}",
            "entityType": "CONNECTION",
            "connectionId": connection_id,
            "requesterUid": requester_uid,
            "targetUid": target_uid,
            "status": "pending",
            "requesterUsername": requester.get("username"),
            "requesterFirstName": requester.get("firstName"),
            "targetUsername": target.get("username"),
            "targetFirstName": target.get("firstName"),
            "createdAt": now,
            "updatedAt": now,
        }
        incoming = {
            **connection,
            **keys.connection_key(target_uid, requester_uid),
            "GSI3PK": keys.user_pk(target_uid),
            "isIncoming": True,
        }
        await self.store.batch_write(self.tables.main, puts=[connection, incoming])
        await self._invalidate(requester_uid, target_uid)
        return {k: v for k, v in connection.items() if v is not None}

    async def get_connections(self, uid: str, status: str = "accepted") -> list[dict]:
        require(uid, "uid")
        if status not in CONNECTION_STATUSES:
            raise InvalidInputError("status", f"must be one of {CONNECTION_STATUSES}")

        async def load():
            return await self.query_all(
                self.tables.main, "PK", keys.user_pk(uid),
                sk_prefix="CONNECTION#", filters={"status": status},
            )

        return await self.cache.get_or_compute(
            f"connections:{uid}:{status}", load, self.cache.ttl.friend_list
        )

    async def friend_uids(self, uid: str) -> list[str]:
        connections = await self.get_connections(uid, "accepted")
        return [
            c["requesterUid"] if c.get("isIncoming") else c["targetUid"]
            for c in connections
        ]

    async def accept(self, requester_uid: str, target_uid: str) -> None:
        pair = (
            keys.connection_key(requester_uid, target_uid),
            keys.connection_key(target_uid, requester_uid),
        )
        await _set_status_both(self, pair, "accepted", "Connection")
        await self._invalidate(requester_uid, target_uid)

    async def decline(self, requester_uid: str, target_uid: str) -> None:
        await self.remove(requester_uid, target_uid)

    async def remove(self, uid: str, other_uid: str) -> None:
        await self.store.batch_write(
            self.tables.main,
            deletes=[keys.connection_key(uid, other_uid), keys.connection_key(other_uid, uid)],
        )
        await self._invalidate(uid, other_uid)


class InviteRepository(Repository):
    def __init__(self, store, cache, connections: ConnectionRepository) -> None:
        super().__init__(store, cache)
        self.connections = connections

    async def create_invite(self, creator_uid: str) -> dict:
        require(creator_uid, "creator_uid")
        invite_id = new_id()
        token = secrets.token_hex(32)
        invite = {
            "PK": keys.user_pk(creator_uid),
            "SK": f"INVITE#{invite_id}",
            "GSI2PK": f"INVITE#{token}",
            "entityType": "INVITE",
            "inviteId": invite_id,
            "inviteToken": token,
            "creatorUid": creator_uid,
            "createdAt": now_iso(),
        }
        await self.store.put(self.tables.main, invite)
        return invite

    async def get_invite(self, token: str):
        require(token, "token")
        page = await self.store.query(
            self.tables.main, "GSI2PK", f"INVITE#{token}",
            index="GSI2-ByLookup", limit=1,
        )
        return page.items[0] if page.items else None

    async def redeem_invite(self, token: str, redeemer_uid: str) -> dict:
        invite = await self.get_invite(token)
        if not invite:
            raise NotFoundError("Invite", token)
        return await self.connections.request(invite["creatorUid"], redeemer_uid)


class PartnershipRepository(Repository):
    async def request(self, user_uid: str, partner_uid: str) -> dict:
        require(user_uid, "user_uid")
        require(partner_uid, "partner_uid")
        if user_uid == partner_uid:
            raise InvalidInputError("partner_uid", "cannot partner with yourself")

        now = now_iso()
        partnership_id = new_id()
        partnership = {
            **keys.partnership_key(user_uid, partner_uid),
            "GSI4PK": keys.user_pk(user_uid),
            "GSI4SK": f"PARTNERSHIP#{partnership_id}",
            "entityType": "PARTNERSHIP",
            "partnershipId": partnership_id,
            "userUid": user_uid,
            "partnerUid": partner_uid,
            "status": "pending",
            "createdAt": now,
            "updatedAt": now,
        }
        incoming = {
            **partnership,
            **keys.partnership_key(partner_uid, user_uid),
            "GSI4PK": keys.user_pk(partner_uid),
            "isIncoming": True,
        }
        await self.store.batch_write(self.tables.main, puts=[partnership, incoming])
        return partnership

    async def list_partnerships(self, uid: str, status: str = "active") -> list[dict]:
        require(uid, "uid")
        if status not in PARTNERSHIP_STATUSES:
            raise InvalidInputError("status", f"must be one of {PARTNERSHIP_STATUSES}")
        return await self.query_all(
            self.tables.main, "PK", keys.user_pk(uid),
            sk_prefix="PARTNERSHIP#", filters={"status": status},
        )

    async def accept(self, user_uid: str, partner_uid: str) -> None:
        pair = (
            keys.partnership_key(user_uid, partner_uid),
            keys.partnership_key(partner_uid, user_uid),
        )
        await _set_status_both(self, pair, "active", "Partnership")

    async def end(self, user_uid: str, partner_uid: str) -> None:
        await self.store.batch_write(
            self.tables.main,
            deletes=[
                keys.partnership_key(user_uid, partner_uid),
                keys.partnership_key(partner_uid, user_uid),
            ],
        )
