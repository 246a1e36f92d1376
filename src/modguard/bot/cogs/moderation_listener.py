"""Message listener Cog for ModGuard.

Runs the automod pass on every guild message and, when the message was not
handled by automod, dispatches the ``warn``/``mute``/``kick``/``ban`` and ``panic``/``unpanic``
prefix commands through the rate limiter and the command handler.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from modguard.bot.runtime import ModerationRuntime
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from modguard.datatypes.moderation_datatypes import InboundMessage, ModerationTarget
from modguard.datatypes.rule_datatypes import MessageMeta
from modguard.moderation.command_actions import PANIC_COMMANDS, USER_NOT_FOUND
from modguard.moderation.permissions import Invoker
from modguard.util.logger import get_logger

logger = get_logger("moderation_listener_cog")


def inbound_from_message(message: discord.Message) -> InboundMessage:
    """Convert a py-cord message into the platform-neutral view."""
    author = message.author
    is_member = isinstance(author, discord.Member)
    return InboundMessage(
        guild_id=GuildID(message.guild.id) if message.guild else None,
        channel_id=ChannelID(message.channel.id),
        message_id=MessageID(message.id),
        author_id=UserID(author.id),
        content=message.content or "",
        author_tag=str(author),
        guild_name=message.guild.name if message.guild else "",
        author_is_bot=author.bot,
        is_member=is_member,
        author_role_ids=frozenset(role.id for role in author.roles) if is_member else frozenset(),
        meta=MessageMeta(
            user_mentions=len(message.mentions),
            role_mentions=len(message.role_mentions),
            mentions_everyone=message.mention_everyone,
        ),
    )


def invoker_from_member(author: discord.abc.User) -> Invoker:
    if not isinstance(author, discord.Member):
        return Invoker(user_id=UserID(author.id), display=str(author), is_member=False)
    return Invoker(
        user_id=UserID(author.id),
        display=str(author),
        role_ids=frozenset(role.id for role in author.roles),
        permissions=frozenset(name for name, value in author.guild_permissions if value),
    )


class ModerationListenerCog(commands.Cog):
    """Cog responsible for automod and the moderation prefix commands."""

    def __init__(self, discord_bot_instance, runtime: ModerationRuntime):
        self.bot = discord_bot_instance
        self.runtime = runtime
        self._restored = False
        logger.info("[MODERATION LISTENER] Moderation listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Re-arm persisted mutes once per process."""
        if self._restored:
            return
        self._restored = True
        restored = await self.runtime.mute_ledger.restore_all()
        logger.info("[MODERATION LISTENER] Ready as %s, %d mute(s) re-armed", self.bot.user, restored)

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return

        try:
            directive = await self.runtime.automod.handle_message(inbound_from_message(message))
        except Exception as exc:
            logger.exception("[MODERATION LISTENER] Automod failed for message %s: %s", message.id, exc)
            directive = None
        if directive is not None:
            return

        await self._handle_command(message)

    async def _resolve_target(self, message: discord.Message, argument: str | None) -> ModerationTarget | None:
        guild = message.guild
        member: discord.Member | None = None
        mentioned = [user for user in message.mentions if isinstance(user, discord.Member)]
        if mentioned:
            member = mentioned[0]
        elif argument:
            try:
                user_id = int(argument.strip("<@!>"))
            except ValueError:
                return None
            member = guild.get_member(user_id)
            if member is None:
                try:
                    member = await guild.fetch_member(user_id)
                except discord.HTTPException:
                    return None
        if member is None:
            return None
        return ModerationTarget(
            guild_id=GuildID(guild.id),
            user_id=UserID(member.id),
            guild_name=guild.name,
            user_tag=str(member),
            channel_id=ChannelID(message.channel.id),
        )

    async def _handle_command(self, message: discord.Message) -> None:
        prefix = self.runtime.app_config.command_prefix
        content = (message.content or "").strip()
        if not content.startswith(prefix):
            return

        parts = content[len(prefix):].split()
        if not parts:
            return
        command = parts[0].lower()
        if not self.runtime.commands.is_command(command):
            return

        admission = self.runtime.rate_limiter.admit(message.author.id, command)
        if not admission.allowed:
            await self._reply(message, admission.reason)
            return

        target = None
        if command not in PANIC_COMMANDS:
            target = await self._resolve_target(message, parts[1] if len(parts) > 1 else None)
        try:
            reply = await self.runtime.commands.dispatch(
                command, invoker_from_member(message.author), target, parts[2:],
                guild_id=GuildID(message.guild.id),
            )
        except Exception as exc:
            logger.exception("[MODERATION LISTENER] Command %s failed: %s", command, exc)
            await self._reply(message, "Something went wrong while running this command.")
            return
        await self._reply(message, reply.content if reply else USER_NOT_FOUND)

    async def _reply(self, message: discord.Message, content: str) -> None:
        try:
            await message.reply(content, mention_author=False)
        except discord.HTTPException as exc:
            logger.warning("[MODERATION LISTENER] Could not reply in channel %s: %s", message.channel.id, exc)


def setup(discord_bot_instance, runtime: ModerationRuntime) -> None:
    """Register the moderation listener cog with the bot."""
    discord_bot_instance.add_cog(ModerationListenerCog(discord_bot_instance, runtime))
