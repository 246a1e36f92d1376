"""Who is being moderated and who is moderating."""

from __future__ import annotations

from dataclasses import dataclass, field

from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from modguard.datatypes.ledger_datatypes import AUTOMOD_ACTOR
from modguard.datatypes.rule_datatypes import MessageMeta


@dataclass(frozen=True, slots=True)
class ModerationTarget:
    """
    The member an action is taken against.

    Attributes:
        guild_id: Guild the member belongs to.
        user_id: Member being moderated.
        guild_name: Display name of the guild, used in DMs.
        user_tag: Display tag of the member, used in replies and logs.
        channel_id: Channel of the triggering message, if any.
        message_id: Triggering message, if any.
    """

    guild_id: GuildID
    user_id: UserID
    guild_name: str = ""
    user_tag: str = ""
    channel_id: ChannelID | None = None
    message_id: MessageID | None = None

    @property
    def display(self) -> str:
        return self.user_tag or str(self.user_id)

    @property
    def mention(self) -> str:
        return self.user_id.mention


@dataclass(frozen=True, slots=True)
class Issuer:
    """The moderator (or automod) behind an action."""

    actor_id: str
    display: str = ""

    @property
    def automated(self) -> bool:
        return self.actor_id == AUTOMOD_ACTOR


AUTOMOD_ISSUER = Issuer(actor_id=AUTOMOD_ACTOR, display="AutoMod")


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """Platform-neutral view of a received guild message."""

    guild_id: GuildID | None
    channel_id: ChannelID
    message_id: MessageID
    author_id: UserID
    content: str
    author_tag: str = ""
    guild_name: str = ""
    author_is_bot: bool = False
    is_member: bool = True
    author_role_ids: frozenset[int] = frozenset()
    meta: MessageMeta = field(default_factory=MessageMeta)

    def to_target(self) -> ModerationTarget:
        if self.guild_id is None:
            raise ValueError("Direct messages have no moderation target")
        return ModerationTarget(
            guild_id=self.guild_id,
            user_id=self.author_id,
            guild_name=self.guild_name,
            user_tag=self.author_tag,
            channel_id=self.channel_id,
            message_id=self.message_id,
        )
