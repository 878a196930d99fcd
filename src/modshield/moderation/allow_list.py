"""
Screening exemptions: bot authors, trusted roles and time-limited allow-list grants.

Grants live in memory only. An expired grant is removed the next time its
subject is looked up; other subjects' entries are left alone.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable

import discord

from modshield.datatypes.discord_datatypes import RoleID, UserID
from modshield.util.logger import get_logger

logger = get_logger("allow_list")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AllowList:
    """Thread-safe map of subject to allow-list expiry.

    Attributes:
        trusted_role_ids: Holders of any of these roles are never screened.
    """

    def __init__(
        self,
        trusted_role_ids: Iterable[RoleID | int | str] = (),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.trusted_role_ids = frozenset(RoleID(role_id) for role_id in trusted_role_ids)
        self._clock = clock
        self._entries: Dict[UserID, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def has_trusted_role(self, member: discord.Member) -> bool:
        return any(RoleID(role.id) in self.trusted_role_ids for role in getattr(member, "roles", ()))

    def is_exempt(self, member: discord.Member) -> bool:
        """Return True if ``member``'s messages skip screening entirely."""
        if getattr(member, "bot", False):
            return True
        if self.has_trusted_role(member):
            return True
        return self.is_allow_listed(UserID(member.id))

    def is_allow_listed(self, subject: UserID | int) -> bool:
        subject = UserID(subject)
        now = self._clock()
        with self._lock:
            expires_at = self._entries.get(subject)
            if expires_at is None:
                return False
            if now < expires_at:
                return True
            del self._entries[subject]
        logger.debug("[ALLOWLIST] Grant for %s expired at %s", subject, expires_at.isoformat())
        return False

    def grant(self, subject: UserID | int, duration: timedelta) -> datetime:
        """Allow-list ``subject`` for ``duration`` from now, replacing any existing grant."""
        subject = UserID(subject)
        expires_at = self._clock() + duration
        with self._lock:
            self._entries[subject] = expires_at
        logger.info("[ALLOWLIST] %s allow-listed until %s", subject, expires_at.isoformat())
        return expires_at

    def revoke(self, subject: UserID | int) -> bool:
        with self._lock:
            return self._entries.pop(UserID(subject), None) is not None

    def expires_at(self, subject: UserID | int) -> datetime | None:
        """Stored expiry for ``subject`` without evicting it."""
        with self._lock:
            return self._entries.get(UserID(subject))
