"""
Wiring of the moderation components for one bot process.
"""

from __future__ import annotations

from dataclasses import dataclass

import discord

from modguard.bot.discord_platform import DiscordPlatform
from modguard.configuration.app_configuration import AppConfig
from modguard.configuration.automod_config import AutoModConfigStore
from modguard.database.audit_repo import AuditRepository
from modguard.database.db_connection import ConnectionManager
from modguard.moderation.audit_log import AuditLogger
from modguard.moderation.automod import AutoModerator
from modguard.moderation.command_actions import ModerationCommandHandler
from modguard.moderation.escalation import EscalationCoordinator
from modguard.moderation.panic import PanicController
from modguard.moderation.rate_limiter import CooldownTracker, RateLimiter
from modguard.moderation.rule_engine import RuleEngine
from modguard.storage.mute_ledger import MuteLedger
from modguard.storage.warn_ledger import WarnLedger
from modguard.util.logger import get_logger

logger = get_logger("runtime")


@dataclass
class ModerationRuntime:
    app_config: AppConfig
    connection: ConnectionManager
    audit_repository: AuditRepository
    mute_ledger: MuteLedger
    rate_limiter: RateLimiter
    automod: AutoModerator
    commands: ModerationCommandHandler

    @classmethod
    def build(cls, bot: discord.Client, app_config: AppConfig) -> "ModerationRuntime":
        automod_config = AutoModConfigStore(app_config.automod_config_path)
        config = automod_config.reload()
        platform = DiscordPlatform(bot, automod_config)

        data_dir = app_config.data_dir
        connection = ConnectionManager()
        audit_repository = AuditRepository(connection)
        audit_logger = AuditLogger(platform, audit_repository)
        warn_ledger = WarnLedger(data_dir / "warns.json")
        mute_ledger = MuteLedger(data_dir / "mutes.json", platform)
        coordinator = EscalationCoordinator(platform, warn_ledger, mute_ledger, audit_logger)
        panic = PanicController(
            platform, audit_logger, app_config.panic_settings,
            app_config.staff_role_ids, app_config.panic_controller_id,
        )

        return cls(
            app_config=app_config,
            connection=connection,
            audit_repository=audit_repository,
            mute_ledger=mute_ledger,
            rate_limiter=RateLimiter(app_config.user_rate_limit, app_config.command_rate_limit),
            automod=AutoModerator(automod_config, RuleEngine(), coordinator, CooldownTracker(config.cooldown_ms)),
            commands=ModerationCommandHandler(
                coordinator, app_config.staff_role_ids, app_config.panic_controller_id, panic=panic,
            ),
        )

    async def start(self) -> None:
        """Open the audit trail. A database failure leaves auditing log-only."""
        try:
            await self.connection.open(self.app_config.audit_db_path)
            await self.audit_repository.initialize_schema()
        except Exception as exc:
            logger.error("[RUNTIME] Audit database unavailable, continuing without it: %s", exc)
            await self.connection.close()

    async def shutdown(self) -> None:
        try:
            await self.mute_ledger.shutdown()
        except Exception as exc:
            logger.exception("Error during mute scheduler shutdown: %s", exc)
        await self.connection.close()
        logger.info("[RUNTIME] Moderation runtime stopped")
