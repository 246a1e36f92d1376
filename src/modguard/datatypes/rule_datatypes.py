"""
Rule configuration and evaluation result types.

``RuleSpec`` objects are built from the automod YAML file and are read-only
for the duration of a moderation pass. ``Violation`` is the ephemeral result
of a single evaluation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from modguard.util.logger import get_logger

logger = get_logger("rule_datatypes")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

# Rule names used by older configuration files.
LEGACY_RULE_NAMES = {
    "blockedWords": "blocked_words",
    "discordInvites": "discord_invites",
    "blockedDomains": "blocked_domains",
}


def to_snake_case(key: str) -> str:
    """Convert ``minLength`` style keys to ``min_length``."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


class Severity(Enum):
    """Disciplinary tier a rule maps to."""

    WARN = "warn"
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Resolve a configured severity, defaulting to ``warn``."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("[RULES] Unknown severity %r, falling back to warn", value)
            return cls.WARN


@dataclass(frozen=True, slots=True)
class RuleSpec:
    """
    A configured rule.

    Attributes:
        name: Rule kind as configured (also used as the display name).
        severity: Tier applied when the rule fires.
        parameters: Kind-specific settings such as ``blocked`` or ``max``.
    """

    name: str
    severity: Severity = Severity.WARN
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def kind(self) -> str:
        """Handler key for this rule, with legacy names resolved."""
        return LEGACY_RULE_NAMES.get(self.name, self.name)

    def get(self, key: str, default: Any = None) -> Any:
        return self.parameters.get(key, default)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RuleSpec":
        """
        Build a rule from its configuration mapping.

        Everything except ``name`` and ``severity`` becomes a parameter;
        camelCase parameter keys are normalised to snake_case.

        Raises:
            ValueError: If the mapping has no usable ``name``.
        """
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValueError(f"Rule without a name: {dict(raw)!r}")
        parameters = {
            to_snake_case(str(key)): value
            for key, value in raw.items()
            if key not in ("name", "severity")
        }
        return cls(name=name, severity=Severity.parse(raw.get("severity", "warn")), parameters=parameters)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "severity": self.severity.value, **dict(self.parameters)}


@dataclass(frozen=True, slots=True)
class MessageMeta:
    """Mention metadata of an inbound message."""

    user_mentions: int = 0
    role_mentions: int = 0
    mentions_everyone: bool = False

    @property
    def mention_count(self) -> int:
        return self.user_mentions + self.role_mentions + (1 if self.mentions_everyone else 0)


@dataclass(frozen=True, slots=True)
class Violation:
    """Outcome of a rule match; never persisted.

    ``rule`` is the exact configured rule that fired, so two rules of the same
    kind with different settings stay distinguishable.
    """

    rule_name: str
    severity: Severity
    reason: str
    rule: RuleSpec | None = field(default=None, compare=False)
