"""
Action directives and audit entries.

An ``ActionDirective`` is the structured outcome of escalation. The calling
layer renders it into replies and audit-log entries, so every variant carries
the data it needs (warn count, duration, failure cause).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from modguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modguard.util.time_utils import epoch_ms, format_duration


class ActionKind(Enum):
    """Platform action a directive refers to."""

    WARN = "warn"
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ActionDirective(ABC):
    """Base class of every escalation outcome."""

    @property
    def succeeded(self) -> bool:
        return True

    @abstractmethod
    def describe(self) -> str:
        """Short label used in replies and audit entries, e.g. ``muted 10m``."""


@dataclass(frozen=True)
class Warned(ActionDirective):
    count: int
    dm_sent: bool = False

    def describe(self) -> str:
        return f"warned ({self.count}/3)"


@dataclass(frozen=True)
class WarnedThenKicked(ActionDirective):
    count: int
    dm_sent: bool = False

    def describe(self) -> str:
        return "warn->kick (dm sent)" if self.dm_sent else "warn->kick"


@dataclass(frozen=True)
class Muted(ActionDirective):
    duration_ms: int

    def describe(self) -> str:
        return f"muted {format_duration(self.duration_ms)}"


@dataclass(frozen=True)
class Kicked(ActionDirective):
    def describe(self) -> str:
        return "kicked"


@dataclass(frozen=True)
class Banned(ActionDirective):
    def describe(self) -> str:
        return "banned"


@dataclass(frozen=True)
class ActionFailed(ActionDirective):
    """
    A platform request was rejected.

    ``warns`` is set when a kick failed after the warn threshold, since the
    warn count is kept in that case.
    """

    kind: ActionKind
    cause: str
    warns: int | None = None

    @property
    def succeeded(self) -> bool:
        return False

    def describe(self) -> str:
        if self.kind is ActionKind.KICK and self.warns is not None:
            return "kick_failed_after_warns"
        return f"{self.kind.value}_failed"


@dataclass(slots=True)
class AuditEntry:
    """Single audit-log record of a moderation action."""

    title: str
    guild_id: GuildID
    user_id: UserID
    action: str
    reason: str
    actor_id: str
    severity: str = ""
    rule_name: str = ""
    user_tag: str = ""
    channel_id: ChannelID | None = None
    details: dict[str, str] = field(default_factory=dict)
    created_at_ms: int = field(default_factory=epoch_ms)
