"""
Automod pass over inbound guild messages.
"""

from __future__ import annotations

from modguard.configuration.automod_config import AutoModConfig, AutoModConfigStore
from modguard.datatypes.action_datatypes import ActionDirective
from modguard.datatypes.moderation_datatypes import InboundMessage
from modguard.moderation.escalation import EscalationCoordinator
from modguard.moderation.rate_limiter import CooldownTracker
from modguard.moderation.rule_engine import RuleEngine
from modguard.util.logger import get_logger

logger = get_logger("automod")


class AutoModerator:
    """
    Runs the configured rules against a message and escalates the first match.

    The configuration is re-read before every pass so edits to the YAML file
    take effect without a restart.
    """

    def __init__(
        self,
        config_store: AutoModConfigStore,
        rule_engine: RuleEngine,
        coordinator: EscalationCoordinator,
        cooldowns: CooldownTracker | None = None,
    ) -> None:
        self.config_store = config_store
        self.rule_engine = rule_engine
        self.coordinator = coordinator
        self.cooldowns = cooldowns or CooldownTracker(config_store.config.cooldown_ms)

    @staticmethod
    def should_bypass(message: InboundMessage, config: AutoModConfig) -> bool:
        if message.channel_id.to_int() in config.whitelist_channel_ids:
            return True
        return bool(config.bypass_role_ids & message.author_role_ids)

    async def handle_message(self, message: InboundMessage) -> ActionDirective | None:
        """
        Moderate a single message.

        Returns:
            The directive of the action taken, or None when the message was
            skipped or matched no rule.
        """
        if message.author_is_bot or message.guild_id is None or not message.is_member:
            return None

        config = self.config_store.reload()
        if not config.enabled:
            return None
        if self.should_bypass(message, config):
            return None

        self.cooldowns.cooldown_ms = config.cooldown_ms
        if self.cooldowns.is_cooling_down(message.author_id):
            logger.debug("[AUTOMOD] User %s is on cooldown, skipping", message.author_id)
            return None

        violation = self.rule_engine.evaluate(message.content, message.meta, config.rules)
        if violation is None:
            return None

        rule = violation.rule
        self.cooldowns.touch(message.author_id)
        logger.info(
            "[AUTOMOD] Rule %s matched for user %s in guild %s",
            violation.rule_name, message.author_id, message.guild_id,
        )
        return await self.coordinator.apply(rule, violation, message.to_target(), config)
