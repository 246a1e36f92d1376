"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but the ledgers store them as JSON
object keys, so every wrapper keeps the canonical string form internally and
converts to ``int`` only at the Discord API boundary.
"""

from __future__ import annotations

from typing import Union


class Snowflake:
    """
    Base class for snowflake identifiers.

    Subclasses only differ by type, so a ``GuildID`` never compares equal to a
    ``UserID`` carrying the same number, while plain ``int`` and ``str``
    values compare by value.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> str(uid)
        '123456789012345678'
        >>> uid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake as a string, int, or wrapper of the same kind.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

        if int(self._value) < 0:
            raise ValueError(f"Snowflake must be non-negative: {value}")

    def to_int(self) -> int:
        """Return the snowflake as an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class GuildID(Snowflake):
    """Snowflake of a guild (server)."""

    __slots__ = ()


class UserID(Snowflake):
    """Snowflake of a user or member."""

    __slots__ = ()

    @property
    def mention(self) -> str:
        return f"<@{self._value}>"


class ChannelID(Snowflake):
    """Snowflake of a text channel or thread."""

    __slots__ = ()


class MessageID(Snowflake):
    """Snowflake of a message."""

    __slots__ = ()
