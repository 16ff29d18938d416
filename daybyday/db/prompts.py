"""Writing prompts (Content table): PK=SYSTEM or USER#{uid}, SK=PROMPT#{id}."""
import random
from typing import Optional

from daybyday.db import keys
from daybyday.db.base import Repository, now_iso, require
from daybyday.ulid import new_id

SYSTEM_PK = "SYSTEM"


class PromptRepository(Repository):
    async def create_prompt(self, text: str, creator_uid: Optional[str] = None) -> dict:
        require(text, "text")
        prompt_id = new_id()
        prompt = {
            "PK": keys.user_pk(creator_uid) if creator_uid else SYSTEM_PK,
            "SK": f"PROMPT#{prompt_id}",
            "entityType": "PROMPT",
            "promptId": prompt_id,
            "promptText": text.strip(),
            "creatorUid": creator_uid,
            "createdAt": now_iso(),
        }
        await self.store.put(self.tables.content, prompt)
        return {k: v for k, v in prompt.items() if v is not None}

    async def _prompts(self, pk: str) -> list[dict]:
        return await self.query_all(self.tables.content, "PK", pk, sk_prefix="PROMPT#")

    async def random_prompt(self, uid: Optional[str] = None) -> Optional[dict]:
        """Pick a system prompt, or one of `uid`'s own prompts when given."""
        pool = await self._prompts(SYSTEM_PK)
        if uid:
            pool += await self._prompts(keys.user_pk(uid))
        return random.choice(pool) if pool else None
