"""
Durable per-guild, per-user warning history.

Layout on disk: ``{guild_id: {user_id: [WarnRecord, ...]}}``. Warnings never
expire; they are cleared when the kick threshold is reached or by a manual
intervention.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, List

from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.datatypes.ledger_datatypes import WarnRecord
from modguard.storage.json_store import JsonFileStore
from modguard.util.logger import get_logger
from modguard.util.time_utils import epoch_ms

logger = get_logger("warn_ledger")


class WarnLedger:
    """
    Append-only warning ledger backed by a JSON file.

    Every mutation reloads the file, applies the change and rewrites the file
    before returning. The read-modify-write cycle runs under a single lock so
    concurrent handlers cannot lose each other's updates.
    """

    def __init__(self, path: Path, *, clock: Callable[[], int] = epoch_ms) -> None:
        self.store = JsonFileStore(path, dict, dict)
        self.clock = clock
        self._lock = asyncio.Lock()

    async def add_warn(
        self,
        guild_id: GuildID,
        user_id: UserID,
        actor_id: str,
        reason: str,
        rule_name: str | None = None,
    ) -> int:
        """
        Append a warning and return the member's new warning count.

        Args:
            guild_id: Guild the warning belongs to.
            user_id: Warned member.
            actor_id: Issuing moderator id, or ``"automod"``.
            reason: Sanitized reason text.
            rule_name: Automod rule that produced the warning, if any.
        """
        record = WarnRecord(actor_id=str(actor_id), reason=reason, timestamp_ms=self.clock(), rule_name=rule_name)
        async with self._lock:
            data = self.store.load()
            guild_bucket = data.setdefault(str(guild_id), {})
            if not isinstance(guild_bucket, dict):
                guild_bucket = data[str(guild_id)] = {}
            history = guild_bucket.get(str(user_id))
            if not isinstance(history, list):
                history = []
            history.append(record.to_dict())
            guild_bucket[str(user_id)] = history
            self.store.save(data)
            count = len(history)

        logger.debug("[WARN LEDGER] User %s in guild %s now has %d warning(s)", user_id, guild_id, count)
        return count

    async def clear_warns(self, guild_id: GuildID, user_id: UserID) -> bool:
        """Remove every warning of a member. Returns False when there was nothing to clear."""
        async with self._lock:
            data = self.store.load()
            guild_bucket = data.get(str(guild_id))
            if not isinstance(guild_bucket, dict) or str(user_id) not in guild_bucket:
                return False
            del guild_bucket[str(user_id)]
            if not guild_bucket:
                del data[str(guild_id)]
            self.store.save(data)

        logger.info("[WARN LEDGER] Cleared warnings of user %s in guild %s", user_id, guild_id)
        return True

    async def get_warns(self, guild_id: GuildID, user_id: UserID) -> List[WarnRecord]:
        async with self._lock:
            data = self.store.load()
        guild_bucket = data.get(str(guild_id))
        history = guild_bucket.get(str(user_id)) if isinstance(guild_bucket, dict) else None
        if not isinstance(history, list):
            return []
        return [WarnRecord.from_dict(raw) for raw in history if isinstance(raw, dict)]

    async def count_warns(self, guild_id: GuildID, user_id: UserID) -> int:
        return len(await self.get_warns(guild_id, user_id))
