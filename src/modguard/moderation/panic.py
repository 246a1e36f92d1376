"""
Panic mode: an incident lockdown of selected channels.

``panic`` makes the configured channels read-only for @everyone and the
member roles, posts an announcement and records an audit entry; ``unpanic``
restores the previous overwrites. The state is kept per guild in memory, so a
restart starts with panic mode off (channel overwrites stay as they were).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence, Set

from modguard.datatypes.action_datatypes import AuditEntry
from modguard.datatypes.discord_datatypes import ChannelID, GuildID
from modguard.moderation.audit_log import AuditLogger
from modguard.moderation.permissions import Invoker, ensure_staff
from modguard.moderation.platform import ModerationPlatform
from modguard.util.logger import get_logger

logger = get_logger("panic")

PANIC_PERMISSION = "manage_guild"

PANIC_NOT_AUTHORIZED = "You are not authorized to run panic commands."
PANIC_FAILED = "Unable to toggle panic right now."

DEFAULT_PANIC_ON = (
    "Attention: Panic protocol is active. Selected channels are read-only while we "
    "address an incident. We will update you shortly."
)
DEFAULT_PANIC_OFF = (
    "Notice: Panic protocol is cleared. All affected channels are restored to normal "
    "access. Thank you for your patience."
)


@dataclass(frozen=True, slots=True)
class PanicSettings:
    """
    Attributes:
        lock_channel_ids: Channels made read-only while panic mode is on.
        member_role_ids: Roles locked in addition to @everyone.
        announcement_channel_id: Where the on/off notices are posted, if anywhere.
    """

    lock_channel_ids: tuple[int, ...] = ()
    member_role_ids: tuple[int, ...] = ()
    announcement_channel_id: int | None = None
    announcement_on: str = DEFAULT_PANIC_ON
    announcement_off: str = DEFAULT_PANIC_OFF


class PanicController:
    def __init__(
        self,
        platform: ModerationPlatform,
        audit_logger: AuditLogger,
        settings: PanicSettings | None = None,
        staff_role_ids: Sequence[int] = (),
        panic_controller_id: int | None = None,
    ) -> None:
        self.platform = platform
        self.audit_logger = audit_logger
        self.settings = settings or PanicSettings()
        self.staff_role_ids = tuple(staff_role_ids)
        self.panic_controller_id = panic_controller_id
        self.active: Set[GuildID] = set()
        self._lock = asyncio.Lock()

    def is_active(self, guild_id: GuildID) -> bool:
        return guild_id in self.active

    async def toggle(self, invoker: Invoker | None, guild_id: GuildID, enable: bool) -> str:
        """
        Switch panic mode for a guild and return the reply for the invoker.

        Channels that fail to (un)lock are logged and skipped; the toggle only
        fails when every configured channel failed.
        """
        authorization = ensure_staff(invoker, [PANIC_PERMISSION], self.staff_role_ids, self.panic_controller_id)
        if not authorization.ok:
            logger.info("[PANIC] Denied panic toggle for %s: %s", invoker.user_id if invoker else "?", authorization.reason)
            return PANIC_NOT_AUTHORIZED

        state = "enabled" if enable else "disabled"
        async with self._lock:
            if self.is_active(guild_id) == enable:
                return f"Panic mode is already {state}."

            failed = await self._set_locks(guild_id, enable)
            channel_count = len(self.settings.lock_channel_ids)
            if channel_count and len(failed) == channel_count:
                logger.error("[PANIC] Could not %s any channel in guild %s", "lock" if enable else "unlock", guild_id)
                return PANIC_FAILED

            if enable:
                self.active.add(guild_id)
            else:
                self.active.discard(guild_id)

        await self._announce(enable)
        await self.audit_logger.emit(
            AuditEntry(
                title=f"Panic {state}",
                guild_id=guild_id,
                user_id=invoker.user_id,
                action="panic on" if enable else "panic off",
                reason=f"Panic {state} by {invoker.display or invoker.user_id.mention}",
                actor_id=str(invoker.user_id),
                user_tag=invoker.display,
                details={
                    "channels": str(channel_count - len(failed)),
                    **({"failed": ", ".join(str(channel_id) for channel_id in failed)} if failed else {}),
                },
            )
        )
        logger.info("[PANIC] Panic %s in guild %s by %s", state, guild_id, invoker.user_id)
        return f"Panic mode {state}."

    async def _set_locks(self, guild_id: GuildID, locked: bool) -> list[int]:
        failed = []
        for channel_id in self.settings.lock_channel_ids:
            try:
                await self.platform.set_channel_lock(
                    guild_id, ChannelID(channel_id), locked, self.settings.member_role_ids,
                )
            except Exception as exc:
                logger.error("[PANIC] Failed to %s channel %s: %s", "lock" if locked else "unlock", channel_id, exc)
                failed.append(channel_id)
        return failed

    async def _announce(self, enable: bool) -> None:
        channel_id = self.settings.announcement_channel_id
        if channel_id is None:
            return
        try:
            await self.platform.send_channel_message(
                ChannelID(channel_id),
                self.settings.announcement_on if enable else self.settings.announcement_off,
            )
        except Exception as exc:
            logger.warning("[PANIC] Could not post the panic announcement: %s", exc)
