"""
Automod configuration: toggles, bypass lists and the ordered rule set.

The configuration lives in a YAML file. When the file is absent the built-in
defaults are written to it; when it cannot be read or parsed the defaults are
used for that pass. Top-level keys found in the file override the defaults,
unknown keys are ignored.
"""

from __future__ import annotations

import copy
import fcntl
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from modguard.datatypes.rule_datatypes import RuleSpec, to_snake_case
from modguard.util.logger import get_logger

logger = get_logger("automod_config")

DEFAULT_AUTOMOD_SETTINGS: Dict[str, Any] = {
    "enabled": True,
    "log_channel_id": None,
    "bypass_role_ids": [],
    "whitelist_channel_ids": [],
    "delete_message": True,
    "reply_to_user": True,
    "reply_message": "Your message was removed by AutoMod.",
    "cooldown_seconds": 5,
    "rules": [
        {"name": "blocked_words", "severity": "warn", "blocked": ["badword1", "badword2"]},
        {"name": "discord_invites", "severity": "mute", "block": True},
        {"name": "blocked_domains", "severity": "mute", "domains": ["short.url"]},
        {"name": "mentions", "severity": "warn", "max": 5},
        {"name": "emoji", "severity": "warn", "max": 20},
        {"name": "caps", "severity": "warn", "min_length": 12, "max_percent": 70},
    ],
}

# Keys used by older configuration files.
LEGACY_KEYS = {
    "bypass_roles": "bypass_role_ids",
    "whitelist_channels": "whitelist_channel_ids",
}


def _id_set(values: Any) -> frozenset[int]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    ids = set()
    for value in values:
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            logger.warning("[AUTOMOD CONFIG] Ignoring invalid id %r", value)
    return frozenset(ids)


def _optional_id(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        logger.warning("[AUTOMOD CONFIG] Ignoring invalid id %r", value)
        return None


def parse_rules(raw_rules: Any) -> List[RuleSpec]:
    """Build rule specs in configured order, skipping malformed entries."""
    if not isinstance(raw_rules, list):
        logger.warning("[AUTOMOD CONFIG] 'rules' is not a list; using no rules")
        return []
    rules: List[RuleSpec] = []
    for raw in raw_rules:
        if not isinstance(raw, Mapping):
            logger.warning("[AUTOMOD CONFIG] Skipping malformed rule %r", raw)
            continue
        try:
            rules.append(RuleSpec.from_dict(raw))
        except ValueError as exc:
            logger.warning("[AUTOMOD CONFIG] Skipping rule: %s", exc)
    return rules


@dataclass(slots=True)
class AutoModConfig:
    """Resolved automod settings for one moderation pass."""

    enabled: bool = True
    log_channel_id: int | None = None
    bypass_role_ids: frozenset[int] = frozenset()
    whitelist_channel_ids: frozenset[int] = frozenset()
    delete_message: bool = True
    reply_to_user: bool = True
    reply_message: str = DEFAULT_AUTOMOD_SETTINGS["reply_message"]
    cooldown_seconds: float = 5
    rules: List[RuleSpec] = field(default_factory=list)

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_seconds * 1000)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AutoModConfig":
        merged = copy.deepcopy(DEFAULT_AUTOMOD_SETTINGS)
        for key, value in data.items():
            key = LEGACY_KEYS.get(to_snake_case(str(key)), to_snake_case(str(key)))
            if key in merged:
                merged[key] = value

        try:
            cooldown = float(merged["cooldown_seconds"])
        except (TypeError, ValueError):
            cooldown = float(DEFAULT_AUTOMOD_SETTINGS["cooldown_seconds"])

        return cls(
            enabled=bool(merged["enabled"]),
            log_channel_id=_optional_id(merged["log_channel_id"]),
            bypass_role_ids=_id_set(merged["bypass_role_ids"]),
            whitelist_channel_ids=_id_set(merged["whitelist_channel_ids"]),
            delete_message=bool(merged["delete_message"]),
            reply_to_user=bool(merged["reply_to_user"]),
            reply_message=str(merged["reply_message"] or ""),
            cooldown_seconds=max(cooldown, 0.0),
            rules=parse_rules(merged["rules"]),
        )

    @classmethod
    def defaults(cls) -> "AutoModConfig":
        return cls.from_mapping({})


class AutoModConfigStore:
    """File-locked YAML accessor for the automod configuration."""

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path)
        self._config = AutoModConfig.defaults()

    @property
    def config(self) -> AutoModConfig:
        return self._config

    def write_defaults(self) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with self.config_path.open("w", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                yaml.safe_dump(DEFAULT_AUTOMOD_SETTINGS, f, sort_keys=False)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            logger.info("[AUTOMOD CONFIG] Wrote default configuration to %s", self.config_path)
        except OSError as exc:
            logger.error("[AUTOMOD CONFIG] Could not write defaults to %s: %s", self.config_path, exc)

    def load_from_disk(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            self.write_defaults()
            return {}
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[AUTOMOD CONFIG] Failed to load %s, using defaults: %s", self.config_path, exc)
            return {}
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[AUTOMOD CONFIG] %s is not a mapping, using defaults", self.config_path)
            return {}
        return data

    def reload(self) -> AutoModConfig:
        """Re-read the file and replace the active configuration."""
        self._config = AutoModConfig.from_mapping(self.load_from_disk())
        logger.debug("[AUTOMOD CONFIG] Loaded %d rule(s), enabled=%s", len(self._config.rules), self._config.enabled)
        return self._config
