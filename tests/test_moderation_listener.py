from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modguard.bot.cogs.moderation_listener import ModerationListenerCog, inbound_from_message, invoker_from_member
from modguard.datatypes.action_datatypes import Warned
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.moderation.command_actions import COMMAND_PERMISSIONS, USER_NOT_FOUND, CommandReply
from modguard.moderation.rate_limiter import USER_LIMIT_REASON, RateLimiter, WindowLimit


def make_member(user_id, roles=(), **permissions):
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.bot = False
    member.roles = [MagicMock(id=role_id) for role_id in roles]
    member.guild_permissions = discord.Permissions(**permissions)
    return member


def make_message(content, author=None, mentions=()):
    guild = MagicMock()
    guild.id = 111
    guild.name = "Test Guild"
    guild.get_member.return_value = None
    guild.fetch_member = AsyncMock(side_effect=discord.NotFound(MagicMock(), "Unknown Member"))

    message = MagicMock()
    message.id = 444
    message.content = content
    message.guild = guild
    message.channel.id = 333
    message.author = author or make_member(999, roles=[50], kick_members=True)
    message.mentions = list(mentions)
    message.role_mentions = []
    message.mention_everyone = False
    message.reply = AsyncMock()
    return message


@pytest.fixture()
def runtime():
    runtime = MagicMock()
    runtime.app_config.command_prefix = "!"
    runtime.automod.handle_message = AsyncMock(return_value=None)
    runtime.rate_limiter = RateLimiter(WindowLimit(15_000, 8), WindowLimit(8_000, 4))
    runtime.commands.is_command.side_effect = lambda name: name in COMMAND_PERMISSIONS
    runtime.commands.dispatch = AsyncMock(return_value=CommandReply("Warned member#0001. (1/3) DM sent."))
    runtime.mute_ledger.restore_all = AsyncMock(return_value=2)
    return runtime


@pytest.fixture()
def cog(runtime):
    return ModerationListenerCog(MagicMock(), runtime)


def test_inbound_from_message():
    message = make_message("hello @everyone", mentions=[make_member(1), make_member(2)])
    message.mention_everyone = True

    inbound = inbound_from_message(message)

    assert inbound.guild_id == GuildID(111)
    assert inbound.author_id == UserID(999)
    assert inbound.author_role_ids == frozenset({50})
    assert inbound.is_member is True
    assert inbound.meta.mention_count == 3


def test_invoker_from_member_collects_permissions():
    invoker = invoker_from_member(make_member(999, roles=[50], kick_members=True, ban_members=True))

    assert invoker.user_id == UserID(999)
    assert invoker.role_ids == frozenset({50})
    assert {"kick_members", "ban_members"} <= invoker.permissions
    assert "moderate_members" not in invoker.permissions


@pytest.mark.asyncio
async def test_automod_hit_stops_command_processing(cog, runtime):
    runtime.automod.handle_message.return_value = Warned(count=1, dm_sent=True)

    await cog.on_message(make_message("!warn <@222> spam"))

    runtime.commands.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_warn_command_with_mention(cog, runtime):
    target = make_member(222)
    message = make_message("!warn <@222> be nice", mentions=[target])

    await cog.on_message(message)

    command, invoker, resolved, args = runtime.commands.dispatch.await_args.args
    assert command == "warn"
    assert invoker.user_id == UserID(999)
    assert resolved.user_id == UserID(222)
    assert resolved.guild_id == GuildID(111)
    assert args == ["be", "nice"]
    message.reply.assert_awaited_once_with("Warned member#0001. (1/3) DM sent.", mention_author=False)


@pytest.mark.asyncio
async def test_panic_command_passes_guild_and_skips_target_lookup(cog, runtime):
    runtime.commands.is_command.side_effect = lambda name: name == "panic"
    message = make_message("!panic 12345")

    await cog.on_message(message)

    message.guild.fetch_member.assert_not_awaited()
    command, invoker, resolved, args = runtime.commands.dispatch.await_args.args
    assert (command, resolved) == ("panic", None)
    assert runtime.commands.dispatch.await_args.kwargs == {"guild_id": GuildID(111)}


@pytest.mark.asyncio
async def test_unknown_user_id_resolves_to_none(cog, runtime):
    message = make_message("!kick 12345 reason")

    await cog.on_message(message)

    message.guild.fetch_member.assert_awaited_once_with(12345)
    assert runtime.commands.dispatch.await_args.args[2] is None


@pytest.mark.asyncio
async def test_rate_limited_command_gets_denial_reply(cog, runtime):
    runtime.rate_limiter = RateLimiter(WindowLimit(15_000, 1), WindowLimit(8_000, 4))
    target = make_member(222)

    await cog.on_message(make_message("!warn <@222> one", mentions=[target]))
    denied = make_message("!warn <@222> two", mentions=[target])
    await cog.on_message(denied)

    assert runtime.commands.dispatch.await_count == 1
    denied.reply.assert_awaited_once_with(USER_LIMIT_REASON, mention_author=False)


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["hello", "!", "!purge 10", "?warn <@222>"])
async def test_non_commands_are_ignored(cog, runtime, content):
    message = make_message(content)

    await cog.on_message(message)

    runtime.commands.dispatch.assert_not_awaited()
    message.reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_bots_and_dms_are_ignored(cog, runtime):
    bot_author = make_member(5)
    bot_author.bot = True
    await cog.on_message(make_message("!warn <@222>", author=bot_author))

    dm = make_message("!warn <@222>")
    dm.guild = None
    await cog.on_message(dm)

    runtime.automod.handle_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_reply_falls_back_to_not_found(cog, runtime):
    runtime.commands.dispatch.return_value = None
    message = make_message("!ban nobody")

    await cog.on_message(message)

    message.reply.assert_awaited_once_with(USER_NOT_FOUND, mention_author=False)


@pytest.mark.asyncio
async def test_on_ready_restores_mutes_once(cog, runtime):
    await cog.on_ready()
    await cog.on_ready()

    runtime.mute_ledger.restore_all.assert_awaited_once()
