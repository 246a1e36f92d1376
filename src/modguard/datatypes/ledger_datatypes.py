"""
Persisted ledger records.

Both records serialise to the camelCase JSON layout of the ledger files so
that files written by earlier deployments load unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from modguard.datatypes.discord_datatypes import GuildID, UserID

AUTOMOD_ACTOR = "automod"


@dataclass(frozen=True, slots=True)
class WarnRecord:
    """One warning issued to a member."""

    actor_id: str
    reason: str
    timestamp_ms: int
    rule_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"actor": self.actor_id, "reason": self.reason, "at": self.timestamp_ms}
        if self.rule_name:
            data["rule"] = self.rule_name
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WarnRecord":
        # Older automod warns carry a rule but no actor.
        return cls(
            actor_id=str(raw.get("actor") or AUTOMOD_ACTOR),
            reason=str(raw.get("reason") or ""),
            timestamp_ms=int(raw.get("at") or 0),
            rule_name=raw.get("rule"),
        )


@dataclass(frozen=True, slots=True)
class MuteEntry:
    """An active mute and the moment it lapses."""

    guild_id: GuildID
    user_id: UserID
    ends_at_ms: int
    reason: str
    actor_id: str

    @property
    def key(self) -> tuple[GuildID, UserID]:
        return (self.guild_id, self.user_id)

    def is_expired(self, now_ms: int) -> bool:
        return self.ends_at_ms <= now_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "guildId": str(self.guild_id),
            "userId": str(self.user_id),
            "endsAt": self.ends_at_ms,
            "reason": self.reason,
            "actorId": self.actor_id,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MuteEntry":
        """
        Raises:
            KeyError, TypeError, ValueError: If a required field is missing or malformed.
        """
        return cls(
            guild_id=GuildID(raw["guildId"]),
            user_id=UserID(raw["userId"]),
            ends_at_ms=int(raw["endsAt"]),
            reason=str(raw.get("reason") or ""),
            actor_id=str(raw.get("actorId") or AUTOMOD_ACTOR),
        )
