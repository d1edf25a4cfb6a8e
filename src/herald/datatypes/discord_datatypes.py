"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but travel as strings through JSON and
the dashboard, so Herald treats every identifier as an opaque string. The
wrappers keep guild, channel, role and user ids from being mixed up while
still comparing equal to their plain string form.
"""

from __future__ import annotations

from typing import TypeVar, Union

SnowflakeT = TypeVar("SnowflakeT", bound="SnowflakeID")


class SnowflakeID:
    """
    Base wrapper for an opaque Discord identifier.

    Attributes:
        _value (str): The identifier stored as a stripped string.

    Example:
        >>> gid = GuildID.from_int(123456789012345678)
        >>> str(gid)
        '123456789012345678'
        >>> gid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "SnowflakeID"]) -> None:
        """
        Args:
            value: The identifier as a string, int, or another wrapper.

        Raises:
            ValueError: If the value is empty, a bool, or of an unsupported type.
        """
        if isinstance(value, SnowflakeID):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                raise ValueError(f"{type(self).__name__} cannot be empty")
            self._value = text
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls: type[SnowflakeT], value: int) -> SnowflakeT:
        return cls(value)

    def to_int(self) -> int:
        """
        Convert to an integer for Discord API calls.

        Raises:
            ValueError: If the identifier is not numeric.
        """
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SnowflakeID):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class GuildID(SnowflakeID):
    """Identifier of a Discord guild; the key for all per-guild configuration."""

    __slots__ = ()


class ChannelID(SnowflakeID):
    """Identifier of a guild channel."""

    __slots__ = ()


class RoleID(SnowflakeID):
    """Identifier of a guild role."""

    __slots__ = ()


class UserID(SnowflakeID):
    """Identifier of a Discord user or guild member."""

    __slots__ = ()
