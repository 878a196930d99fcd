"""
Type-safe wrappers for the Discord snowflakes modshield passes around.

Ids come from three places (the ``.env`` file, the YAML config, and live
Discord objects) and in three shapes (``str``, ``int``, model objects). The
wrappers normalise all of them so allow-list keys and configured ids compare
equal no matter where they were read from.
"""

from __future__ import annotations

from typing import Any, Union


class Snowflake:
    """
    Base wrapper for a Discord snowflake id.

    Snowflakes are 64-bit integers; they are stored as strings so that values
    parsed from the environment and values read from ``discord.Object.id``
    hash identically.

    Example:
        >>> UserID("123") == UserID.from_int(123)
        True
        >>> RoleID(" 42 ").to_int()
        42
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake as a string, int, or another wrapper.

        Raises:
            ValueError: If the value is not an integer snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    @classmethod
    def from_model(cls, model: Any):
        """Create a wrapper from any Discord model exposing ``.id``."""
        return cls(model.id)

    def to_int(self) -> int:
        """Return the integer form used by Discord API calls."""
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


class UserID(Snowflake):
    """Snowflake of a Discord user or guild member."""

    __slots__ = ()


class ChannelID(Snowflake):
    """Snowflake of a Discord text channel."""

    __slots__ = ()


class RoleID(Snowflake):
    """Snowflake of a Discord role."""

    __slots__ = ()
