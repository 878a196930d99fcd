"""
States, moderator decisions and screening outcomes for a moderation case.
"""

from __future__ import annotations

from enum import Enum


class CaseState(Enum):
    """Lifecycle of a single suspected-violation incident."""

    DETECTED = "detected"
    MUTED = "muted"
    AWAITING_DECISION = "awaiting_decision"
    BANNED = "banned"
    UNMUTED = "unmuted"
    ALLOWLISTED = "allowlisted"
    TIMED_OUT = "timed_out"

    @property
    def is_resolved(self) -> bool:
        return self in RESOLVED_STATES

    def __str__(self) -> str:
        return self.value


RESOLVED_STATES = frozenset(
    {CaseState.BANNED, CaseState.UNMUTED, CaseState.ALLOWLISTED, CaseState.TIMED_OUT}
)


class ModeratorDecision(Enum):
    """Button affordances offered on a moderator report, keyed by custom id."""

    UNMUTE = "unmute"
    ALLOWLIST = "tempallowlist"
    BAN = "ban"

    @classmethod
    def from_custom_id(cls, custom_id: str | None) -> "ModeratorDecision | None":
        """Return the decision for ``custom_id`` or ``None`` when it is not one of ours."""
        for decision in cls:
            if decision.value == custom_id:
                return decision
        return None

    @property
    def resolved_state(self) -> CaseState:
        return {
            ModeratorDecision.UNMUTE: CaseState.UNMUTED,
            ModeratorDecision.ALLOWLIST: CaseState.ALLOWLISTED,
            ModeratorDecision.BAN: CaseState.BANNED,
        }[self]

    @property
    def log_verb(self) -> str:
        """Past-tense verb used in the moderation log line."""
        return {
            ModeratorDecision.UNMUTE: "unmuted",
            ModeratorDecision.ALLOWLIST: "allowlisted",
            ModeratorDecision.BAN: "banned",
        }[self]

    def __str__(self) -> str:
        return self.value


class SubmissionResult(Enum):
    """What happened to one moderator interaction offered to a case."""

    ACCEPTED = "accepted"
    INVALID = "invalid"
    ALREADY_DECIDED = "already_decided"


class ScreeningOutcome(Enum):
    """Result of screening one message."""

    IGNORED = "ignored"
    EXEMPT = "exempt"
    CLEAN = "clean"
    CASE_OPENED = "case_opened"
