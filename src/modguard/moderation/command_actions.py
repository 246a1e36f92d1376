"""
Manual moderation commands: warn, mute, kick, ban and the panic toggles.

Each command authorizes the invoker, validates the target and arguments,
runs the matching escalation path and produces exactly one reply. Successful
and failed actions are both sent to the audit log; denials and validation
errors are not, since nothing was attempted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from modguard.datatypes.action_datatypes import (
    ActionDirective,
    ActionFailed,
    ActionKind,
    Muted,
    Warned,
    WarnedThenKicked,
)
from modguard.datatypes.discord_datatypes import GuildID
from modguard.datatypes.moderation_datatypes import Issuer, ModerationTarget
from modguard.moderation.escalation import WARN_KICK_THRESHOLD, EscalationCoordinator
from modguard.moderation.panic import PANIC_FAILED, PanicController
from modguard.moderation.permissions import NOT_AUTHORIZED, Invoker, ensure_staff
from modguard.util.logger import get_logger
from modguard.util.sanitize import REPLY_LIMIT, sanitize
from modguard.util.time_utils import parse_duration

logger = get_logger("command_actions")

COMMAND_PERMISSIONS = {
    "warn": "kick_members",
    "mute": "moderate_members",
    "kick": "kick_members",
    "ban": "ban_members",
}
PANIC_COMMANDS = ("panic", "unpanic")

USER_NOT_FOUND = "User not found."
SELF_MODERATION = "You cannot perform moderation actions on yourself."
INVALID_DURATION = "Provide a duration like 1m, 1h, or 1d."
NO_REASON = "No reason provided"
CANNOT_KICK = "I cannot kick this user."
CANNOT_BAN = "I cannot ban this user."


@dataclass(frozen=True, slots=True)
class CommandReply:
    """The single reply a command produces, plus the directive if an action ran."""

    content: str
    directive: ActionDirective | None = None

    @property
    def ok(self) -> bool:
        return self.directive is not None and self.directive.succeeded


def command_reason(words: Iterable[str] | str) -> str:
    text = words if isinstance(words, str) else " ".join(words)
    return sanitize(text, REPLY_LIMIT) if text.strip() else NO_REASON


class ModerationCommandHandler:
    """Runs authorized manual actions through the escalation coordinator."""

    def __init__(
        self,
        coordinator: EscalationCoordinator,
        staff_role_ids: Sequence[int] = (),
        panic_controller_id: int | None = None,
        panic: PanicController | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.staff_role_ids = tuple(staff_role_ids)
        self.panic_controller_id = panic_controller_id
        self.panic = panic

    def is_command(self, name: str) -> bool:
        if name in PANIC_COMMANDS:
            return self.panic is not None
        return name in COMMAND_PERMISSIONS

    def _precheck(self, command: str, invoker: Invoker | None, target: ModerationTarget | None) -> CommandReply | None:
        authorization = ensure_staff(invoker, [COMMAND_PERMISSIONS[command]], self.staff_role_ids, self.panic_controller_id)
        if not authorization.ok:
            logger.info("[COMMANDS] Denied %s for %s: %s", command, invoker.user_id if invoker else "?", authorization.reason)
            return CommandReply(NOT_AUTHORIZED)
        if target is None:
            return CommandReply(USER_NOT_FOUND)
        if target.user_id == invoker.user_id:
            return CommandReply(SELF_MODERATION)
        return None

    async def _can_moderate(self, target: ModerationTarget, kind: ActionKind) -> bool:
        """Hierarchy check before kick/ban; an unanswerable check lets the action itself decide."""
        try:
            return bool(await self.coordinator.platform.can_moderate(target.guild_id, target.user_id, kind))
        except Exception as exc:
            logger.warning("[COMMANDS] Could not check whether %s can be moderated: %s", target.user_id, exc)
            return True

    @staticmethod
    def _issuer(invoker: Invoker) -> Issuer:
        return Issuer(actor_id=str(invoker.user_id), display=invoker.display)

    async def _audit(self, title: str, target: ModerationTarget, invoker: Invoker, reason: str, directive: ActionDirective) -> None:
        await self.coordinator.audit_logger.emit(
            self.coordinator.audit_entry(title, target, self._issuer(invoker), reason, directive)
        )

    async def warn(self, invoker: Invoker | None, target: ModerationTarget | None, reason_text: Iterable[str] | str) -> CommandReply:
        denied = self._precheck("warn", invoker, target)
        if denied:
            return denied
        reason = command_reason(reason_text)
        directive = await self.coordinator.warn(target, reason, self._issuer(invoker))

        if isinstance(directive, Warned):
            content = (
                f"Warned {target.display}. ({directive.count}/{WARN_KICK_THRESHOLD}) "
                f"DM {'sent' if directive.dm_sent else 'failed'}."
            )
            title = "User warned"
        elif isinstance(directive, WarnedThenKicked):
            content = (
                f"Kicked {target.display} after {WARN_KICK_THRESHOLD} warnings. "
                f"DM {'sent' if directive.dm_sent else 'failed'}."
            )
            title = "Warn -> Kick"
        else:
            content = f"Reached {WARN_KICK_THRESHOLD} warns but failed to kick this user."
            title = "Warn -> Kick failed"

        await self._audit(title, target, invoker, reason, directive)
        return CommandReply(content, directive)

    async def mute(
        self,
        invoker: Invoker | None,
        target: ModerationTarget | None,
        duration_spec: str | None,
        reason_text: Iterable[str] | str,
    ) -> CommandReply:
        denied = self._precheck("mute", invoker, target)
        if denied:
            return denied
        duration_ms = parse_duration(duration_spec)
        if duration_ms is None:
            return CommandReply(INVALID_DURATION)
        reason = command_reason(reason_text)
        directive = await self.coordinator.mute(target, duration_ms, reason, self._issuer(invoker))

        if isinstance(directive, Muted):
            content = f"Muted {target.display} for {duration_spec}."
            title = "User muted"
        else:
            content = "Unable to mute this user."
            title = "Mute failed"

        await self._audit(title, target, invoker, reason, directive)
        return CommandReply(content, directive)

    async def kick(self, invoker: Invoker | None, target: ModerationTarget | None, reason_text: Iterable[str] | str) -> CommandReply:
        denied = self._precheck("kick", invoker, target)
        if denied:
            return denied
        if not await self._can_moderate(target, ActionKind.KICK):
            return CommandReply(CANNOT_KICK)
        reason = command_reason(reason_text)
        directive = await self.coordinator.kick(target, reason, self._issuer(invoker))

        failed = isinstance(directive, ActionFailed)
        await self._audit("Kick failed" if failed else "User kicked", target, invoker, reason, directive)
        return CommandReply("Unable to kick this user." if failed else f"Kicked {target.display}.", directive)

    async def ban(self, invoker: Invoker | None, target: ModerationTarget | None, reason_text: Iterable[str] | str) -> CommandReply:
        denied = self._precheck("ban", invoker, target)
        if denied:
            return denied
        if not await self._can_moderate(target, ActionKind.BAN):
            return CommandReply(CANNOT_BAN)
        reason = command_reason(reason_text)
        directive = await self.coordinator.ban(target, reason, self._issuer(invoker))

        failed = isinstance(directive, ActionFailed)
        await self._audit("Ban failed" if failed else "User banned", target, invoker, reason, directive)
        return CommandReply("Unable to ban this user." if failed else f"Banned {target.display}.", directive)

    async def toggle_panic(self, invoker: Invoker | None, guild_id: GuildID | None, enable: bool) -> CommandReply:
        if self.panic is None or guild_id is None:
            return CommandReply(PANIC_FAILED)
        return CommandReply(await self.panic.toggle(invoker, guild_id, enable))

    async def dispatch(
        self,
        command: str,
        invoker: Invoker | None,
        target: ModerationTarget | None,
        args: Sequence[str],
        *,
        guild_id: GuildID | None = None,
    ) -> CommandReply | None:
        """
        Route a parsed prefix command.

        ``args`` excludes the target argument. ``guild_id`` is the guild the
        command was sent in; the panic toggles act on it. Returns None for
        commands this handler does not own.
        """
        if command in PANIC_COMMANDS and self.panic is not None:
            return await self.toggle_panic(invoker, guild_id, command == "panic")
        if command == "warn":
            return await self.warn(invoker, target, args)
        if command == "mute":
            return await self.mute(invoker, target, args[0] if args else None, args[1:])
        if command == "kick":
            return await self.kick(invoker, target, args)
        if command == "ban":
            return await self.ban(invoker, target, args)
        return None
