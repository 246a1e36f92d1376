"""
Persistent audit trail of moderation actions.

Timestamps are stored as INTEGER unix milliseconds so ordering needs no
parsing.
"""

from __future__ import annotations

import json
from typing import List

from modguard.database.db_connection import ConnectionManager
from modguard.datatypes.action_datatypes import AuditEntry
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modguard.util.logger import get_logger

logger = get_logger("audit_repo")

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS moderation_actions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        guild_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        channel_id TEXT,
        title TEXT NOT NULL,
        action TEXT NOT NULL,
        severity TEXT NOT NULL DEFAULT '',
        rule_name TEXT NOT NULL DEFAULT '',
        reason TEXT NOT NULL,
        actor_id TEXT NOT NULL,
        user_tag TEXT NOT NULL DEFAULT '',
        details TEXT NOT NULL DEFAULT '{}',
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_moderation_actions_guild_user ON moderation_actions(guild_id, user_id)",
]


class AuditRepository:
    """CRUD for the ``moderation_actions`` table."""

    def __init__(self, connection: ConnectionManager) -> None:
        self.connection = connection

    async def initialize_schema(self) -> None:
        async with self.connection.transaction() as conn:
            for statement in SCHEMA:
                await conn.execute(statement)

    async def log_action(self, entry: AuditEntry) -> None:
        async with self.connection.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO moderation_actions
                    (guild_id, user_id, channel_id, title, action, severity, rule_name, reason, actor_id, user_tag, details, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entry.guild_id),
                    str(entry.user_id),
                    str(entry.channel_id) if entry.channel_id is not None else None,
                    entry.title,
                    entry.action,
                    entry.severity,
                    entry.rule_name,
                    entry.reason,
                    entry.actor_id,
                    entry.user_tag,
                    json.dumps(entry.details),
                    entry.created_at_ms,
                ),
            )
        logger.debug("[AUDIT REPO] Logged %s on user %s in guild %s", entry.action, entry.user_id, entry.guild_id)

    async def recent_actions(self, guild_id: GuildID, user_id: UserID, limit: int = 20) -> List[AuditEntry]:
        """Most recent audit entries of a member, newest first."""
        limit = max(1, min(100, int(limit)))
        async with self.connection.read() as conn:
            cursor = await conn.execute(
                """
                SELECT guild_id, user_id, channel_id, title, action, severity, rule_name, reason,
                       actor_id, user_tag, details, created_at
                FROM moderation_actions
                WHERE guild_id = ? AND user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (str(guild_id), str(user_id), limit),
            )
            rows = await cursor.fetchall()

        return [
            AuditEntry(
                title=row["title"],
                guild_id=GuildID(row["guild_id"]),
                user_id=UserID(row["user_id"]),
                action=row["action"],
                reason=row["reason"],
                actor_id=row["actor_id"],
                severity=row["severity"],
                rule_name=row["rule_name"],
                user_tag=row["user_tag"],
                channel_id=ChannelID(row["channel_id"]) if row["channel_id"] else None,
                details=json.loads(row["details"] or "{}"),
                created_at_ms=row["created_at"],
            )
            for row in rows
        ]
