"""
py-cord implementation of the moderation platform.

Translates the snowflake wrappers of the moderation core into Discord API
calls. Failures propagate as ``discord`` exceptions; the escalation layer
turns them into ``ActionFailed`` directives.
"""

from __future__ import annotations

import datetime
from typing import Sequence

import discord

from modguard.configuration.automod_config import AutoModConfigStore
from modguard.datatypes.action_datatypes import ActionKind, AuditEntry
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from modguard.util.logger import get_logger
from modguard.util.time_utils import MAX_TIMEOUT_MS

logger = get_logger("discord_platform")

MAX_TIMEOUT = datetime.timedelta(milliseconds=MAX_TIMEOUT_MS)

# Permission the bot needs for each action on a member
ACTION_PERMISSIONS = {
    ActionKind.MUTE: "moderate_members",
    ActionKind.KICK: "kick_members",
    ActionKind.BAN: "ban_members",
}

# Channel permissions revoked while panic mode is on
LOCKED_PERMISSIONS = ("send_messages", "send_messages_in_threads", "add_reactions")

# Embed color by the leading word of a directive description
ACTION_COLORS = {
    "warned": discord.Color.gold(),
    "warn->kick": discord.Color.red(),
    "muted": discord.Color.orange(),
    "kicked": discord.Color.red(),
    "banned": discord.Color.dark_red(),
    "panic": discord.Color.dark_orange(),
}


def build_audit_embed(entry: AuditEntry) -> discord.Embed:
    """Render an audit entry for the configured log channel."""
    color = next(
        (color for prefix, color in ACTION_COLORS.items() if entry.action.startswith(prefix)),
        discord.Color.dark_grey(),
    )
    embed = discord.Embed(
        title=entry.title,
        color=color,
        timestamp=datetime.datetime.fromtimestamp(entry.created_at_ms / 1000, tz=datetime.timezone.utc),
    )
    user_value = entry.user_id.mention
    if entry.user_tag:
        user_value = f"{user_value} ({entry.user_tag})"
    embed.add_field(name="User", value=user_value, inline=True)
    embed.add_field(name="Action", value=entry.action, inline=True)
    if entry.rule_name:
        embed.add_field(name="Rule", value=entry.rule_name, inline=True)
    if entry.severity:
        embed.add_field(name="Severity", value=entry.severity, inline=True)
    if entry.channel_id is not None:
        embed.add_field(name="Channel", value=f"<#{entry.channel_id}>", inline=True)
    embed.add_field(name="Reason", value=entry.reason[:1024] or "-", inline=False)
    for name, value in entry.details.items():
        embed.add_field(name=name.replace("_", " ").title(), value=value, inline=True)
    actor = "AutoMod" if not entry.actor_id.isdigit() else f"<@{entry.actor_id}>"
    embed.set_footer(text=f"By {actor} | User ID: {entry.user_id}")
    return embed


class DiscordPlatform:
    """``ModerationPlatform`` backed by a connected py-cord client."""

    def __init__(self, bot: discord.Client, automod_config: AutoModConfigStore) -> None:
        self.bot = bot
        self.automod_config = automod_config

    async def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            guild = await self.bot.fetch_guild(guild_id.to_int())
        return guild

    async def _member(self, guild_id: GuildID, user_id: UserID) -> discord.Member:
        guild = await self._guild(guild_id)
        member = guild.get_member(user_id.to_int())
        if member is None:
            member = await guild.fetch_member(user_id.to_int())
        return member

    async def _channel(self, channel_id: ChannelID) -> discord.abc.Messageable:
        channel = self.bot.get_channel(channel_id.to_int())
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id.to_int())
        return channel

    async def send_direct_message(self, user_id: UserID, content: str) -> None:
        user = self.bot.get_user(user_id.to_int()) or await self.bot.fetch_user(user_id.to_int())
        await user.send(content)

    async def timeout_member(self, guild_id: GuildID, user_id: UserID, duration_ms: int, reason: str) -> None:
        member = await self._member(guild_id, user_id)
        duration = datetime.timedelta(milliseconds=duration_ms)
        if duration > MAX_TIMEOUT:
            raise ValueError(f"Timeout of {duration} exceeds the {MAX_TIMEOUT.days} day maximum")
        await member.timeout_for(duration, reason=reason)

    async def remove_timeout(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        member = await self._member(guild_id, user_id)
        await member.remove_timeout(reason=reason)

    async def kick_member(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        guild = await self._guild(guild_id)
        await guild.kick(discord.Object(id=user_id.to_int()), reason=reason)

    async def ban_member(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        guild = await self._guild(guild_id)
        await guild.ban(discord.Object(id=user_id.to_int()), reason=reason)

    async def delete_message(self, channel_id: ChannelID, message_id: MessageID) -> None:
        channel = await self._channel(channel_id)
        try:
            await channel.get_partial_message(message_id.to_int()).delete()
        except discord.NotFound:
            logger.debug("[DISCORD PLATFORM] Message %s already deleted", message_id)

    async def send_channel_message(self, channel_id: ChannelID, content: str) -> None:
        channel = await self._channel(channel_id)
        await channel.send(content, allowed_mentions=discord.AllowedMentions(users=True, roles=False, everyone=False))

    async def send_audit_log(self, entry: AuditEntry) -> None:
        log_channel_id = self.automod_config.config.log_channel_id
        if log_channel_id is None:
            return
        channel = await self._channel(ChannelID(log_channel_id))
        await channel.send(embed=build_audit_embed(entry))

    async def can_moderate(self, guild_id: GuildID, user_id: UserID, kind: ActionKind) -> bool:
        guild = await self._guild(guild_id)
        member = await self._member(guild_id, user_id)
        me = guild.me
        permission = ACTION_PERMISSIONS.get(kind)
        if permission is not None and not getattr(me.guild_permissions, permission):
            return False
        if member.id == guild.owner_id:
            return False
        return me.top_role > member.top_role

    async def set_channel_lock(
        self, guild_id: GuildID, channel_id: ChannelID, locked: bool, role_ids: Sequence[int] = (),
    ) -> None:
        guild = await self._guild(guild_id)
        channel = await self._channel(channel_id)
        roles = [guild.default_role]
        roles.extend(role for role in (guild.get_role(int(role_id)) for role_id in role_ids) if role is not None)

        value = False if locked else None
        reason = "Panic mode enabled" if locked else "Panic mode disabled"
        for role in roles:
            overwrite = channel.overwrites_for(role)
            overwrite.update(**{name: value for name in LOCKED_PERMISSIONS})
            await channel.set_permissions(role, overwrite=None if overwrite.is_empty() else overwrite, reason=reason)
