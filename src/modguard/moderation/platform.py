"""
Interface of the chat platform the moderation core acts through.

The core never talks to Discord directly. Every method may raise on failure
(missing permissions, unknown member, network errors); callers decide whether
a failure is reported or swallowed.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from modguard.datatypes.action_datatypes import ActionKind, AuditEntry
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID


class ModerationPlatform(Protocol):
    async def send_direct_message(self, user_id: UserID, content: str) -> None:
        ...

    async def timeout_member(self, guild_id: GuildID, user_id: UserID, duration_ms: int, reason: str) -> None:
        ...

    async def remove_timeout(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        ...

    async def kick_member(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        ...

    async def ban_member(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        ...

    async def delete_message(self, channel_id: ChannelID, message_id: MessageID) -> None:
        ...

    async def send_channel_message(self, channel_id: ChannelID, content: str) -> None:
        ...

    async def send_audit_log(self, entry: AuditEntry) -> None:
        ...

    async def can_moderate(self, guild_id: GuildID, user_id: UserID, kind: ActionKind) -> bool:
        """Whether the bot outranks the member and holds the permission ``kind`` needs."""
        ...

    async def set_channel_lock(
        self, guild_id: GuildID, channel_id: ChannelID, locked: bool, role_ids: Sequence[int] = (),
    ) -> None:
        """Deny (or restore) sending in a channel for @everyone and ``role_ids``."""
        ...
