import pytest

from modguard.datatypes.action_datatypes import ActionKind, Muted, Warned, WarnedThenKicked
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modguard.datatypes.moderation_datatypes import ModerationTarget
from modguard.moderation.audit_log import AuditLogger
from modguard.moderation.command_actions import (
    CANNOT_BAN,
    CANNOT_KICK,
    INVALID_DURATION,
    SELF_MODERATION,
    USER_NOT_FOUND,
    ModerationCommandHandler,
    command_reason,
)
from modguard.moderation.escalation import EscalationCoordinator
from modguard.moderation.panic import PANIC_FAILED, PanicController, PanicSettings
from modguard.moderation.permissions import NOT_AUTHORIZED, Invoker
from modguard.storage.mute_ledger import MuteLedger
from modguard.storage.warn_ledger import WarnLedger

STAFF_ROLE = 50
PANIC_CONTROLLER = 7

TARGET = ModerationTarget(
    guild_id=GuildID(111),
    user_id=UserID(222),
    guild_name="Test Guild",
    user_tag="member#0001",
    channel_id=ChannelID(333),
)
MODERATOR = Invoker(
    user_id=UserID(999),
    display="mod#0001",
    role_ids=frozenset({STAFF_ROLE}),
    permissions=frozenset({"kick_members", "moderate_members", "ban_members"}),
)


@pytest.fixture()
def handler(tmp_path, platform, clock):
    coordinator = EscalationCoordinator(
        platform,
        WarnLedger(tmp_path / "warns.json", clock=clock),
        MuteLedger(tmp_path / "mutes.json", platform, clock=clock),
        AuditLogger(platform),
    )
    return ModerationCommandHandler(coordinator, [STAFF_ROLE], PANIC_CONTROLLER)


def audit_titles(platform):
    return [call.args[0].title for call in platform.send_audit_log.await_args_list]


@pytest.mark.asyncio
async def test_warn_replies_with_count(handler, platform):
    reply = await handler.warn(MODERATOR, TARGET, ["be", "nice"])

    assert reply.content == "Warned member#0001. (1/3) DM sent."
    assert reply.directive == Warned(count=1, dm_sent=True)
    assert reply.ok is True
    assert audit_titles(platform) == ["User warned"]
    audit = platform.send_audit_log.await_args.args[0]
    assert audit.actor_id == "999"
    assert audit.reason == "be nice"


@pytest.mark.asyncio
async def test_warn_reports_failed_dm(handler, platform):
    platform.send_direct_message.side_effect = RuntimeError("DMs closed")

    reply = await handler.warn(MODERATOR, TARGET, "")

    assert reply.content == "Warned member#0001. (1/3) DM failed."
    records = await handler.coordinator.warn_ledger.get_warns(TARGET.guild_id, TARGET.user_id)
    assert records[0].reason == "No reason provided"


@pytest.mark.asyncio
async def test_third_warn_kicks(handler, platform):
    for _ in range(2):
        await handler.warn(MODERATOR, TARGET, "spam")

    reply = await handler.warn(MODERATOR, TARGET, "spam")

    assert reply.content == "Kicked member#0001 after 3 warnings. DM sent."
    assert isinstance(reply.directive, WarnedThenKicked)
    assert audit_titles(platform)[-1] == "Warn -> Kick"


@pytest.mark.asyncio
async def test_third_warn_with_failed_kick(handler, platform):
    platform.kick_member.side_effect = RuntimeError("Missing Permissions")
    for _ in range(2):
        await handler.warn(MODERATOR, TARGET, "spam")

    reply = await handler.warn(MODERATOR, TARGET, "spam")

    assert reply.content == "Reached 3 warns but failed to kick this user."
    assert reply.ok is False
    audit = platform.send_audit_log.await_args.args[0]
    assert audit.details == {"error": "Missing Permissions", "warns": "3"}


@pytest.mark.asyncio
async def test_unauthorized_invoker_is_denied_without_side_effects(handler, platform):
    outsider = Invoker(user_id=UserID(5), permissions=frozenset({"kick_members"}))

    reply = await handler.warn(outsider, TARGET, "x")

    assert reply.content == NOT_AUTHORIZED
    assert reply.directive is None
    platform.send_direct_message.assert_not_awaited()
    platform.send_audit_log.assert_not_awaited()
    assert await handler.coordinator.warn_ledger.count_warns(TARGET.guild_id, TARGET.user_id) == 0


@pytest.mark.asyncio
async def test_missing_invoker_is_denied(handler):
    reply = await handler.kick(None, TARGET, "x")
    assert reply.content == NOT_AUTHORIZED


@pytest.mark.asyncio
async def test_panic_controller_bypasses_roles_and_permissions(handler, platform):
    controller = Invoker(user_id=UserID(PANIC_CONTROLLER))

    reply = await handler.ban(controller, TARGET, "raid")

    assert reply.content == "Banned member#0001."
    platform.ban_member.assert_awaited_once_with(TARGET.guild_id, TARGET.user_id, "raid")


@pytest.mark.asyncio
async def test_missing_target_and_self_target(handler):
    assert (await handler.kick(MODERATOR, None, "x")).content == USER_NOT_FOUND

    own = ModerationTarget(guild_id=GuildID(111), user_id=UserID(999), user_tag="mod#0001")
    assert (await handler.kick(MODERATOR, own, "x")).content == SELF_MODERATION


@pytest.mark.asyncio
@pytest.mark.parametrize("spec", [None, "", "10", "10x", "0m", "m10", "-5m"])
async def test_mute_rejects_invalid_durations(handler, platform, spec):
    reply = await handler.mute(MODERATOR, TARGET, spec, "x")

    assert reply.content == INVALID_DURATION
    platform.timeout_member.assert_not_awaited()


@pytest.mark.asyncio
async def test_mute_with_valid_duration(handler, platform, clock):
    reply = await handler.mute(MODERATOR, TARGET, "10M", [])

    assert reply.content == "Muted member#0001 for 10M."
    assert reply.directive == Muted(duration_ms=600_000)
    platform.timeout_member.assert_awaited_once_with(TARGET.guild_id, TARGET.user_id, 600_000, "No reason provided")
    assert handler.coordinator.mute_ledger.get_mute(TARGET.guild_id, TARGET.user_id).ends_at_ms == clock.now + 600_000
    assert audit_titles(platform) == ["User muted"]
    await handler.coordinator.mute_ledger.shutdown()


@pytest.mark.asyncio
async def test_mute_failure_reply(handler, platform):
    platform.timeout_member.side_effect = RuntimeError("Missing Permissions")

    reply = await handler.mute(MODERATOR, TARGET, "1h", "x")

    assert reply.content == "Unable to mute this user."
    assert audit_titles(platform) == ["Mute failed"]


@pytest.mark.asyncio
async def test_mute_longer_than_discord_allows_is_reported(handler, platform):
    reply = await handler.mute(MODERATOR, TARGET, "60d", "x")

    assert reply.content == "Unable to mute this user."
    assert reply.ok is False
    platform.timeout_member.assert_not_awaited()
    assert handler.coordinator.mute_ledger.get_mute(TARGET.guild_id, TARGET.user_id) is None
    assert audit_titles(platform) == ["Mute failed"]


@pytest.mark.asyncio
async def test_kick_and_ban_replies(handler, platform):
    assert (await handler.kick(MODERATOR, TARGET, "x")).content == "Kicked member#0001."

    platform.kick_member.side_effect = RuntimeError("nope")
    platform.ban_member.side_effect = RuntimeError("nope")
    assert (await handler.kick(MODERATOR, TARGET, "x")).content == "Unable to kick this user."
    assert (await handler.ban(MODERATOR, TARGET, "x")).content == "Unable to ban this user."
    assert audit_titles(platform) == ["User kicked", "Kick failed", "Ban failed"]


@pytest.mark.asyncio
async def test_dispatch_routes_arguments(handler, platform):
    reply = await handler.dispatch("mute", MODERATOR, TARGET, ["1h", "too", "loud"])

    assert reply.content == "Muted member#0001 for 1h."
    platform.timeout_member.assert_awaited_once_with(TARGET.guild_id, TARGET.user_id, 3_600_000, "too loud")
    assert await handler.dispatch("purge", MODERATOR, TARGET, []) is None
    await handler.coordinator.mute_ledger.shutdown()


@pytest.mark.asyncio
async def test_dispatch_mute_without_duration(handler):
    reply = await handler.dispatch("mute", MODERATOR, TARGET, [])
    assert reply.content == INVALID_DURATION


@pytest.mark.asyncio
async def test_kick_and_ban_refused_above_bot_role(handler, platform):
    platform.can_moderate.return_value = False

    assert (await handler.kick(MODERATOR, TARGET, "x")).content == CANNOT_KICK
    assert (await handler.ban(MODERATOR, TARGET, "x")).content == CANNOT_BAN

    platform.kick_member.assert_not_awaited()
    platform.ban_member.assert_not_awaited()
    platform.send_audit_log.assert_not_awaited()
    assert [call.args[2] for call in platform.can_moderate.await_args_list] == [ActionKind.KICK, ActionKind.BAN]


@pytest.mark.asyncio
async def test_unanswered_hierarchy_check_still_attempts_kick(handler, platform):
    platform.can_moderate.side_effect = RuntimeError("Unknown Member")

    reply = await handler.kick(MODERATOR, TARGET, "x")

    assert reply.content == "Kicked member#0001."
    platform.kick_member.assert_awaited_once()


@pytest.mark.asyncio
async def test_hierarchy_check_runs_after_authorization(handler, platform):
    outsider = Invoker(user_id=UserID(5), permissions=frozenset({"kick_members"}))

    assert (await handler.kick(outsider, TARGET, "x")).content == NOT_AUTHORIZED
    platform.can_moderate.assert_not_awaited()


@pytest.mark.asyncio
async def test_panic_commands_need_a_controller(handler):
    assert handler.is_command("warn")
    assert not handler.is_command("panic")
    assert await handler.dispatch("panic", MODERATOR, None, [], guild_id=TARGET.guild_id) is None


@pytest.mark.asyncio
async def test_dispatch_toggles_panic(handler, platform):
    admin = Invoker(user_id=UserID(999), role_ids=frozenset({STAFF_ROLE}), permissions=frozenset({"manage_guild"}))
    handler.panic = PanicController(
        platform, handler.coordinator.audit_logger, PanicSettings(lock_channel_ids=(301,)), [STAFF_ROLE],
    )

    assert handler.is_command("panic") and handler.is_command("unpanic")
    reply = await handler.dispatch("panic", admin, None, [], guild_id=TARGET.guild_id)
    assert reply.content == "Panic mode enabled."
    assert reply.directive is None
    platform.set_channel_lock.assert_awaited_once_with(TARGET.guild_id, ChannelID(301), True, ())

    reply = await handler.dispatch("unpanic", admin, None, [], guild_id=TARGET.guild_id)
    assert reply.content == "Panic mode disabled."
    assert (await handler.dispatch("panic", admin, None, [])).content == PANIC_FAILED


def test_command_reason_is_sanitized():
    token = "A" * 24 + "." + "B" * 6 + "." + "C" * 27
    assert command_reason(["leaked", token]) == "leaked [redacted]"
    assert command_reason(["   "]) == "No reason provided"
    assert command_reason("multi\n\nline") == "multi line"
    assert len(command_reason("x" * 5000)) == 1800
