"""
Escalation state machine.

Turns a severity into a concrete platform action and the matching ledger
update:

- ``warn``: append to the warn ledger and DM the member. The third warning
  DMs a removal notice, kicks, and clears the ledger when the kick succeeds.
  A failed kick is reported and the warnings are kept.
- ``mute``: platform timeout first, ledger entry and expiry only on success.
- ``kick`` / ``ban``: pass-through to the platform.

Platform exceptions never leave this module; they become ``ActionFailed``.
DMs are best-effort and only surface as a boolean on the directive.
"""

from __future__ import annotations

from modguard.configuration.automod_config import AutoModConfig
from modguard.datatypes.action_datatypes import (
    ActionDirective,
    ActionFailed,
    ActionKind,
    AuditEntry,
    Banned,
    Kicked,
    Muted,
    Warned,
    WarnedThenKicked,
)
from modguard.datatypes.discord_datatypes import UserID
from modguard.datatypes.moderation_datatypes import AUTOMOD_ISSUER, Issuer, ModerationTarget
from modguard.datatypes.rule_datatypes import RuleSpec, Severity, Violation
from modguard.moderation.audit_log import AuditLogger
from modguard.moderation.platform import ModerationPlatform
from modguard.storage.mute_ledger import MuteLedger
from modguard.storage.warn_ledger import WarnLedger
from modguard.util.logger import get_logger
from modguard.util.sanitize import sanitize
from modguard.util.time_utils import MAX_TIMEOUT_MS, format_duration

logger = get_logger("escalation")

WARN_KICK_THRESHOLD = 3
DEFAULT_MUTE_MINUTES = 10


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def mute_duration_for(rule: RuleSpec) -> int:
    """Mute length of a rule in milliseconds (``duration_minutes``, default 10)."""
    minutes = rule.get("duration_minutes", DEFAULT_MUTE_MINUTES)
    try:
        minutes = float(minutes)
    except (TypeError, ValueError):
        logger.warning("[ESCALATION] Invalid duration_minutes %r on rule %s", minutes, rule.name)
        minutes = DEFAULT_MUTE_MINUTES
    if minutes <= 0:
        minutes = DEFAULT_MUTE_MINUTES
    return int(minutes * 60_000)


class EscalationCoordinator:
    """Applies violations and manual actions through the ledgers and the platform."""

    def __init__(
        self,
        platform: ModerationPlatform,
        warn_ledger: WarnLedger,
        mute_ledger: MuteLedger,
        audit_logger: AuditLogger,
    ) -> None:
        self.platform = platform
        self.warn_ledger = warn_ledger
        self.mute_ledger = mute_ledger
        self.audit_logger = audit_logger

    # --------------------------
    # Automod entry point
    # --------------------------
    async def apply(
        self,
        rule: RuleSpec,
        violation: Violation,
        target: ModerationTarget,
        config: AutoModConfig,
    ) -> ActionDirective:
        """
        Handle an automod violation end to end.

        Deletes the message and replies to the author when configured, runs
        the severity path and always emits an audit entry.
        """
        reason = sanitize(violation.reason)

        if config.delete_message and target.channel_id is not None and target.message_id is not None:
            try:
                await self.platform.delete_message(target.channel_id, target.message_id)
            except Exception as exc:
                logger.warning("[ESCALATION] Could not delete message %s: %s", target.message_id, exc)

        directive = await self.escalate(
            violation.severity,
            target,
            reason,
            AUTOMOD_ISSUER,
            rule_name=rule.name,
            duration_ms=mute_duration_for(rule),
        )

        if config.reply_to_user and target.channel_id is not None:
            reply = f"{target.mention}, {config.reply_message}\n{reason} [{directive.describe()}]"
            try:
                await self.platform.send_channel_message(target.channel_id, reply)
            except Exception as exc:
                logger.warning("[ESCALATION] Could not reply to user %s: %s", target.user_id, exc)

        await self.audit_logger.emit(
            self.audit_entry("AutoMod Action", target, AUTOMOD_ISSUER, reason, directive,
                             severity=violation.severity, rule_name=rule.name)
        )
        return directive

    # --------------------------
    # Severity paths
    # --------------------------
    async def escalate(
        self,
        severity: Severity,
        target: ModerationTarget,
        reason: str,
        issuer: Issuer,
        *,
        rule_name: str | None = None,
        duration_ms: int | None = None,
    ) -> ActionDirective:
        """Run the action for ``severity`` and return its directive."""
        if severity is Severity.WARN:
            return await self.warn(target, reason, issuer, rule_name=rule_name)
        if severity is Severity.MUTE:
            return await self.mute(target, duration_ms or DEFAULT_MUTE_MINUTES * 60_000, reason, issuer)
        if severity is Severity.KICK:
            return await self.kick(target, reason, issuer)
        if severity is Severity.BAN:
            return await self.ban(target, reason, issuer)
        raise ValueError(f"Unsupported severity: {severity!r}")

    async def warn(
        self,
        target: ModerationTarget,
        reason: str,
        issuer: Issuer,
        *,
        rule_name: str | None = None,
    ) -> ActionDirective:
        count = await self.warn_ledger.add_warn(target.guild_id, target.user_id, issuer.actor_id, reason, rule_name)
        dm_sent = await self.notify(target.user_id, self.warn_notice(target, reason, issuer, count, rule_name))

        if count < WARN_KICK_THRESHOLD:
            return Warned(count=count, dm_sent=dm_sent)

        removal_sent = await self.notify(target.user_id, self.removal_notice(target, reason, issuer, rule_name))
        kick_reason = (
            f"AutoMod: {WARN_KICK_THRESHOLD} warns - {reason}"
            if issuer.automated
            else f"Manual warn threshold reached: {reason}"
        )
        try:
            await self.platform.kick_member(target.guild_id, target.user_id, kick_reason)
        except Exception as exc:
            logger.error("[ESCALATION] Failed to kick user %s after %d warns: %s", target.user_id, count, exc)
            return ActionFailed(kind=ActionKind.KICK, cause=describe_error(exc), warns=count)

        await self.warn_ledger.clear_warns(target.guild_id, target.user_id)
        logger.info("[ESCALATION] Kicked user %s in guild %s after %d warns", target.user_id, target.guild_id, count)
        return WarnedThenKicked(count=count, dm_sent=removal_sent)

    async def mute(self, target: ModerationTarget, duration_ms: int, reason: str, issuer: Issuer) -> ActionDirective:
        if duration_ms > MAX_TIMEOUT_MS:
            logger.warning("[ESCALATION] Refusing %d ms mute for user %s: above the timeout maximum", duration_ms, target.user_id)
            return ActionFailed(kind=ActionKind.MUTE, cause=f"Timeout longer than {format_duration(MAX_TIMEOUT_MS)} is not allowed")

        try:
            await self.platform.timeout_member(target.guild_id, target.user_id, duration_ms, self.platform_reason(reason, issuer))
        except Exception as exc:
            logger.error("[ESCALATION] Failed to mute user %s: %s", target.user_id, exc)
            return ActionFailed(kind=ActionKind.MUTE, cause=describe_error(exc))

        await self.mute_ledger.add_mute(target.guild_id, target.user_id, duration_ms, reason, issuer.actor_id)
        return Muted(duration_ms=duration_ms)

    async def kick(self, target: ModerationTarget, reason: str, issuer: Issuer) -> ActionDirective:
        try:
            await self.platform.kick_member(target.guild_id, target.user_id, self.platform_reason(reason, issuer))
        except Exception as exc:
            logger.error("[ESCALATION] Failed to kick user %s: %s", target.user_id, exc)
            return ActionFailed(kind=ActionKind.KICK, cause=describe_error(exc))
        return Kicked()

    async def ban(self, target: ModerationTarget, reason: str, issuer: Issuer) -> ActionDirective:
        try:
            await self.platform.ban_member(target.guild_id, target.user_id, self.platform_reason(reason, issuer))
        except Exception as exc:
            logger.error("[ESCALATION] Failed to ban user %s: %s", target.user_id, exc)
            return ActionFailed(kind=ActionKind.BAN, cause=describe_error(exc))
        return Banned()

    # --------------------------
    # Helpers
    # --------------------------
    async def notify(self, user_id: UserID, content: str) -> bool:
        """Best-effort DM; returns whether it was delivered."""
        try:
            await self.platform.send_direct_message(user_id, content)
            return True
        except Exception as exc:
            logger.debug("[ESCALATION] DM to user %s failed: %s", user_id, exc)
            return False

    @staticmethod
    def platform_reason(reason: str, issuer: Issuer) -> str:
        return f"AutoMod: {reason}" if issuer.automated else reason

    @staticmethod
    def warn_notice(target: ModerationTarget, reason: str, issuer: Issuer, count: int, rule_name: str | None) -> str:
        if issuer.automated:
            lines = [f"You received an AutoMod warning in {target.guild_name}.", f"Reason: {reason}"]
            if rule_name:
                lines.append(f"Rule: {rule_name}")
            lines.append(f"Count: {count}/{WARN_KICK_THRESHOLD}")
        else:
            lines = [
                f"You have received a warning in {target.guild_name}.",
                f"Reason: {reason}",
                f"Count: {count}/{WARN_KICK_THRESHOLD}",
                f"Issued by: {issuer.display or issuer.actor_id}",
            ]
        return "\n".join(lines)

    @staticmethod
    def removal_notice(target: ModerationTarget, reason: str, issuer: Issuer, rule_name: str | None) -> str:
        if issuer.automated:
            lines = [f"You have reached {WARN_KICK_THRESHOLD} AutoMod warnings and will be removed.", f"Last reason: {reason}"]
            if rule_name:
                lines.append(f"Rule: {rule_name}")
            if target.channel_id is not None:
                lines.append(f"Channel: <#{target.channel_id}>")
        else:
            lines = [
                f"You have reached {WARN_KICK_THRESHOLD} warnings and will be removed from the server.",
                f"Last reason: {reason}",
                f"Issued by: {issuer.display or issuer.actor_id}",
                f"Guild: {target.guild_name}",
            ]
        return "\n".join(lines)

    @staticmethod
    def audit_entry(
        title: str,
        target: ModerationTarget,
        issuer: Issuer,
        reason: str,
        directive: ActionDirective,
        *,
        severity: Severity | None = None,
        rule_name: str | None = None,
    ) -> AuditEntry:
        details: dict[str, str] = {}
        if isinstance(directive, (Warned, WarnedThenKicked)):
            details["warns"] = str(directive.count)
            details["dm"] = "sent" if directive.dm_sent else "failed"
        elif isinstance(directive, Muted):
            details["duration_ms"] = str(directive.duration_ms)
        elif isinstance(directive, ActionFailed):
            details["error"] = directive.cause
            if directive.warns is not None:
                details["warns"] = str(directive.warns)

        return AuditEntry(
            title=title,
            guild_id=target.guild_id,
            user_id=target.user_id,
            action=directive.describe(),
            reason=reason,
            actor_id=issuer.actor_id,
            severity=severity.value if severity else "",
            rule_name=rule_name or "",
            user_tag=target.user_tag,
            channel_id=target.channel_id,
            details=details,
        )
