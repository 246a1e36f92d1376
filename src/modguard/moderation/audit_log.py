"""
Fire-and-forget audit emission.

An audit entry goes to three sinks: the application log, the SQLite audit
trail (when open) and the platform's log channel. Each sink is best-effort;
a failure is logged and never reaches the caller.
"""

from __future__ import annotations

from modguard.database.audit_repo import AuditRepository
from modguard.datatypes.action_datatypes import AuditEntry
from modguard.moderation.platform import ModerationPlatform
from modguard.util.logger import get_logger

logger = get_logger("audit_log")


class AuditLogger:
    def __init__(self, platform: ModerationPlatform, repository: AuditRepository | None = None) -> None:
        self.platform = platform
        self.repository = repository

    async def emit(self, entry: AuditEntry) -> bool:
        """
        Record an audit entry.

        Returns:
            bool: True if every available sink accepted the entry.
        """
        logger.info(
            "[AUDIT] %s | guild=%s user=%s action=%s rule=%s severity=%s reason=%s",
            entry.title, entry.guild_id, entry.user_id, entry.action,
            entry.rule_name or "-", entry.severity or "-", entry.reason,
        )
        delivered = True

        if self.repository is not None and self.repository.connection.is_open:
            try:
                await self.repository.log_action(entry)
            except Exception as exc:
                logger.error("[AUDIT] Failed to persist audit entry: %s", exc)
                delivered = False

        try:
            await self.platform.send_audit_log(entry)
        except Exception as exc:
            logger.warning("[AUDIT] Failed to deliver audit entry to the log channel: %s", exc)
            delivered = False

        return delivered
