import datetime
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modguard.bot.discord_platform import MAX_TIMEOUT, DiscordPlatform, build_audit_embed
from modguard.datatypes.action_datatypes import ActionKind, AuditEntry
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID

GUILD = GuildID(111)
USER = UserID(222)


@pytest.fixture()
def member():
    member = MagicMock()
    member.timeout_for = AsyncMock()
    member.remove_timeout = AsyncMock()
    return member


@pytest.fixture()
def guild(member):
    guild = MagicMock()
    guild.get_member.return_value = member
    guild.kick = AsyncMock()
    guild.ban = AsyncMock()
    return guild


@pytest.fixture()
def channel():
    channel = MagicMock()
    channel.send = AsyncMock()
    channel.get_partial_message.return_value.delete = AsyncMock()
    return channel


@pytest.fixture()
def bot(guild, channel):
    bot = MagicMock()
    bot.get_guild.return_value = guild
    bot.get_channel.return_value = channel
    bot.get_user.return_value = None
    bot.fetch_user = AsyncMock()
    return bot


@pytest.fixture()
def config_store():
    store = MagicMock()
    store.config.log_channel_id = 555
    return store


@pytest.fixture()
def platform_impl(bot, config_store):
    return DiscordPlatform(bot, config_store)


def audit_entry(**overrides):
    fields = dict(
        title="AutoMod Action",
        guild_id=GUILD,
        user_id=USER,
        action="muted 10m",
        reason="Links to blocked domains are not allowed.",
        actor_id="automod",
        severity="mute",
        rule_name="blocked_domains",
        user_tag="member#0001",
        channel_id=ChannelID(333),
        details={"duration_ms": "600000"},
        created_at_ms=1_700_000_000_000,
    )
    fields.update(overrides)
    return AuditEntry(**fields)


@pytest.mark.asyncio
async def test_direct_message_fetches_user(platform_impl, bot):
    user = MagicMock()
    user.send = AsyncMock()
    bot.fetch_user.return_value = user

    await platform_impl.send_direct_message(USER, "hello")

    bot.fetch_user.assert_awaited_once_with(222)
    user.send.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_direct_message_failure_propagates(platform_impl, bot):
    user = MagicMock()
    user.send = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "DM disabled"))
    bot.fetch_user.return_value = user

    with pytest.raises(discord.Forbidden):
        await platform_impl.send_direct_message(USER, "hello")


@pytest.mark.asyncio
async def test_timeout_uses_duration(platform_impl, member):
    await platform_impl.timeout_member(GUILD, USER, 600_000, "AutoMod: spam")

    member.timeout_for.assert_awaited_once_with(datetime.timedelta(minutes=10), reason="AutoMod: spam")


@pytest.mark.asyncio
async def test_timeout_above_maximum_is_rejected(platform_impl, member):
    with pytest.raises(ValueError):
        await platform_impl.timeout_member(GUILD, USER, 60 * 86_400_000, "long")

    member.timeout_for.assert_not_awaited()


@pytest.mark.asyncio
async def test_timeout_at_maximum_is_allowed(platform_impl, member):
    await platform_impl.timeout_member(GUILD, USER, 28 * 86_400_000, "long")

    assert member.timeout_for.await_args.args[0] == MAX_TIMEOUT


@pytest.mark.asyncio
async def test_member_is_fetched_when_not_cached(platform_impl, guild, member):
    guild.get_member.return_value = None
    guild.fetch_member = AsyncMock(return_value=member)

    await platform_impl.remove_timeout(GUILD, USER, "Mute expired")

    guild.fetch_member.assert_awaited_once_with(222)
    member.remove_timeout.assert_awaited_once_with(reason="Mute expired")


@pytest.mark.asyncio
async def test_kick_and_ban_use_snowflake_objects(platform_impl, guild):
    await platform_impl.kick_member(GUILD, USER, "kick reason")
    await platform_impl.ban_member(GUILD, USER, "ban reason")

    kicked = guild.kick.await_args
    assert kicked.args[0].id == 222
    assert kicked.kwargs["reason"] == "kick reason"
    assert guild.ban.await_args.args[0].id == 222


@pytest.mark.asyncio
async def test_delete_message_ignores_already_deleted(platform_impl, channel):
    channel.get_partial_message.return_value.delete.side_effect = discord.NotFound(MagicMock(), "Not found")

    await platform_impl.delete_message(ChannelID(333), MessageID(444))

    channel.get_partial_message.assert_called_once_with(444)


@pytest.mark.asyncio
async def test_channel_message(platform_impl, channel):
    await platform_impl.send_channel_message(ChannelID(333), "<@222>, removed")

    assert channel.send.await_args.args == ("<@222>, removed",)


@pytest.mark.asyncio
async def test_audit_log_goes_to_configured_channel(platform_impl, bot, channel):
    await platform_impl.send_audit_log(audit_entry())

    bot.get_channel.assert_called_once_with(555)
    embed = channel.send.await_args.kwargs["embed"]
    assert embed.title == "AutoMod Action"


@pytest.mark.asyncio
async def test_audit_log_skipped_without_channel(platform_impl, config_store, channel):
    config_store.config.log_channel_id = None

    await platform_impl.send_audit_log(audit_entry())

    channel.send.assert_not_awaited()


def test_build_audit_embed_fields():
    embed = build_audit_embed(audit_entry())

    fields = {field.name: field.value for field in embed.fields}
    assert fields["User"] == "<@222> (member#0001)"
    assert fields["Action"] == "muted 10m"
    assert fields["Rule"] == "blocked_domains"
    assert fields["Channel"] == "<#333>"
    assert fields["Duration Ms"] == "600000"
    assert embed.color == discord.Color.orange()
    assert embed.footer.text == "By AutoMod | User ID: 222"


def test_build_audit_embed_manual_actor():
    embed = build_audit_embed(audit_entry(actor_id="999", action="banned", rule_name="", severity=""))

    names = [field.name for field in embed.fields]
    assert "Rule" not in names
    assert embed.color == discord.Color.dark_red()
    assert embed.footer.text == "By <@999> | User ID: 222"


@pytest.fixture()
def hierarchy(guild, member):
    guild.owner_id = 1
    guild.me.guild_permissions = discord.Permissions(kick_members=True, ban_members=True)
    guild.me.top_role = 10
    member.id = USER.to_int()
    member.top_role = 5
    return guild


@pytest.mark.asyncio
async def test_can_moderate_lower_member(platform_impl, hierarchy):
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.KICK) is True
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.BAN) is True


@pytest.mark.asyncio
async def test_cannot_moderate_equal_or_higher_role(platform_impl, hierarchy, member):
    member.top_role = 10
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.KICK) is False


@pytest.mark.asyncio
async def test_cannot_moderate_owner(platform_impl, hierarchy):
    hierarchy.owner_id = USER.to_int()
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.BAN) is False


@pytest.mark.asyncio
async def test_cannot_moderate_without_permission(platform_impl, hierarchy):
    hierarchy.me.guild_permissions = discord.Permissions(kick_members=True)
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.KICK) is True
    assert await platform_impl.can_moderate(GUILD, USER, ActionKind.BAN) is False


@pytest.mark.asyncio
async def test_channel_lock_denies_sending_for_everyone_and_member_roles(platform_impl, guild, channel):
    everyone, members = MagicMock(name="everyone"), MagicMock(name="members")
    guild.default_role = everyone
    guild.get_role.side_effect = lambda role_id: members if role_id == 42 else None
    channel.overwrites_for.side_effect = lambda role: discord.PermissionOverwrite(view_channel=True)
    channel.set_permissions = AsyncMock()

    await platform_impl.set_channel_lock(GUILD, ChannelID(333), True, [42, 43])

    assert [call.args[0] for call in channel.set_permissions.await_args_list] == [everyone, members]
    overwrite = channel.set_permissions.await_args.kwargs["overwrite"]
    assert overwrite.send_messages is False
    assert overwrite.add_reactions is False
    assert overwrite.view_channel is True
    assert channel.set_permissions.await_args.kwargs["reason"] == "Panic mode enabled"


@pytest.mark.asyncio
async def test_channel_unlock_clears_empty_overwrite(platform_impl, guild, channel):
    guild.default_role = MagicMock(name="everyone")
    channel.overwrites_for.return_value = discord.PermissionOverwrite(send_messages=False, add_reactions=False)
    channel.set_permissions = AsyncMock()

    await platform_impl.set_channel_lock(GUILD, ChannelID(333), False)

    channel.set_permissions.assert_awaited_once_with(
        guild.default_role, overwrite=None, reason="Panic mode disabled",
    )


def test_panic_embed_color():
    embed = build_audit_embed(audit_entry(title="Panic enabled", action="panic on", actor_id="999"))
    assert embed.color == discord.Color.dark_orange()
