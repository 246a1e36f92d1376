"""
Durable mute ledger with scheduled, crash-recoverable expiry.

The platform-level timeout is the source of truth for "is muted"; the ledger
only remembers when each timeout should be lifted so that expiry survives a
restart. Entries are indexed by ``(guild_id, user_id)`` and a new mute for a
member replaces the previous one together with its armed expiry.

Every mutation rewrites ``mutes.json`` (a JSON list of entries) under one
lock. Expiry goes through :meth:`MuteLedger.clear_mute`, the same path a
manual unmute takes.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, Hashable, List, Tuple

from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.datatypes.ledger_datatypes import MuteEntry
from modguard.moderation.platform import ModerationPlatform
from modguard.scheduler.expiry_scheduler import ExpiryScheduler
from modguard.storage.json_store import JsonFileStore
from modguard.util.logger import get_logger
from modguard.util.time_utils import epoch_ms

logger = get_logger("mute_ledger")

MuteKey = Tuple[GuildID, UserID]


class MuteLedger:
    """
    Indexed mute ledger.

    Invariant: every entry in ``entries`` has exactly one armed job in
    ``scheduler`` and every armed job belongs to an entry, for the life of
    the process. ``restore_all`` re-establishes this after a restart.
    """

    def __init__(
        self,
        path: Path,
        platform: ModerationPlatform,
        *,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = JsonFileStore(path, list, list)
        self.platform = platform
        self.clock = clock
        self.entries: Dict[MuteKey, MuteEntry] = {}
        self.scheduler = ExpiryScheduler(self._on_expire, clock=clock, name="modguard-mute-expiry")
        self._lock = asyncio.Lock()

    def _persist(self) -> bool:
        ordered = sorted(self.entries.values(), key=lambda entry: entry.ends_at_ms)
        return self.store.save([entry.to_dict() for entry in ordered])

    async def add_mute(
        self,
        guild_id: GuildID,
        user_id: UserID,
        duration_ms: int,
        reason: str,
        actor_id: str,
    ) -> MuteEntry:
        """
        Record a mute ending ``duration_ms`` from now and arm its expiry.

        An existing mute of the same member is replaced, including its timer.
        """
        entry = MuteEntry(
            guild_id=GuildID(guild_id),
            user_id=UserID(user_id),
            ends_at_ms=self.clock() + int(duration_ms),
            reason=reason,
            actor_id=str(actor_id),
        )
        async with self._lock:
            replaced = self.entries.get(entry.key)
            self.entries[entry.key] = entry
            self._persist()
            await self.scheduler.schedule(entry.key, entry.ends_at_ms)

        if replaced is not None:
            logger.info("[MUTE LEDGER] Replaced existing mute of user %s in guild %s", user_id, guild_id)
        logger.debug("[MUTE LEDGER] Muted user %s in guild %s until %d", user_id, guild_id, entry.ends_at_ms)
        return entry

    async def clear_mute(self, guild_id: GuildID, user_id: UserID, *, reason: str = "Mute expired") -> bool:
        """
        Remove the member's mute, disarm its expiry and lift the platform timeout.

        The ledger entry is removed even when the platform request fails; the
        failure is logged and swallowed.

        Returns:
            bool: True if a ledger entry existed.
        """
        key = (GuildID(guild_id), UserID(user_id))
        async with self._lock:
            existed = self.entries.pop(key, None) is not None
            if existed:
                self._persist()
            await self.scheduler.cancel(key)

        try:
            await self.platform.remove_timeout(key[0], key[1], reason)
        except Exception as exc:
            logger.warning("[MUTE LEDGER] Could not lift timeout of user %s in guild %s: %s", user_id, guild_id, exc)

        logger.info("[MUTE LEDGER] Cleared mute of user %s in guild %s (%s)", user_id, guild_id, reason)
        return existed

    async def restore_all(self) -> int:
        """
        Rebuild the in-memory index and expiry schedule from disk.

        Entries whose expiry already elapsed are dropped without an unmute
        request, since the platform timeout lapsed on its own. Malformed
        records are dropped. When a member has several stored entries only
        the latest-ending one is kept.

        Returns:
            int: Number of mutes re-armed.
        """
        now = self.clock()
        restored: Dict[MuteKey, MuteEntry] = {}
        dropped = 0

        for raw in self.store.load():
            try:
                entry = MuteEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("[MUTE LEDGER] Skipping malformed mute record %r: %s", raw, exc)
                dropped += 1
                continue
            if entry.is_expired(now):
                dropped += 1
                continue
            current = restored.get(entry.key)
            if current is None or entry.ends_at_ms > current.ends_at_ms:
                restored[entry.key] = entry

        async with self._lock:
            for key in list(self.entries):
                await self.scheduler.cancel(key)
            self.entries = restored
            self._persist()
            for entry in restored.values():
                await self.scheduler.schedule(entry.key, entry.ends_at_ms)

        logger.info("[MUTE LEDGER] Restored %d mute(s), dropped %d expired or invalid", len(restored), dropped)
        return len(restored)

    def get_mute(self, guild_id: GuildID, user_id: UserID) -> MuteEntry | None:
        return self.entries.get((GuildID(guild_id), UserID(user_id)))

    def list_mutes(self, guild_id: GuildID) -> List[MuteEntry]:
        guild_id = GuildID(guild_id)
        return sorted(
            (entry for entry in self.entries.values() if entry.guild_id == guild_id),
            key=lambda entry: entry.ends_at_ms,
        )

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()

    async def _on_expire(self, key: Hashable, run_at_ms: int) -> None:
        guild_id, user_id = key
        entry = self.entries.get(key)
        if entry is None:
            return
        if entry.ends_at_ms > run_at_ms:
            # The mute was replaced by a longer one after this job was popped
            return
        await self.clear_mute(guild_id, user_id, reason="Mute expired")
