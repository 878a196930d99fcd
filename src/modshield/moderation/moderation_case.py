"""
State machine for one suspected-violation incident.

A case moves ``DETECTED -> MUTED -> AWAITING_DECISION`` and then to exactly
one of ``BANNED``, ``UNMUTED``, ``ALLOWLISTED`` or ``TIMED_OUT``:

1. Media evidence is re-posted to the moderator channel (best effort), the
   offending message is deleted and the muted role is applied.
2. A report with decision buttons is posted, mentioning the moderator role.
3. The first valid button press, or the decision timeout, resolves the case.
   Later presses are told the case is already resolved.
4. Archived evidence is deleted once the case is resolved.

Discord failures on the committed path raise :class:`PlatformError` and leave
the case in its last completed state.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Tuple, TypeVar

import discord

from modshield.datatypes.case_datatypes import CaseState, ModeratorDecision, SubmissionResult
from modshield.datatypes.content_datatypes import RejectionReason
from modshield.datatypes.discord_datatypes import RoleID, UserID
from modshield.errors import PlatformError
from modshield.moderation.allow_list import AllowList
from modshield.ui.case_embeds import (
    ALLOWLISTED_DM,
    PROBLEM_SOLVED,
    TIMED_OUT_NOTICE,
    UNMUTED_DM,
    build_report_embed,
    build_resolution_embed,
)
from modshield.ui.case_view import ModerationDecisionView
from modshield.util.logger import get_logger

logger = get_logger("moderation_case")

T = TypeVar("T")

DEFAULT_DECISION_TIMEOUT = timedelta(hours=24)
DEFAULT_ALLOWLIST_DURATION = timedelta(days=1)
DEFAULT_BAN_REASON = "Sending phishing links"
SECONDS_PER_DAY = 24 * 60 * 60


class ModerationCase:
    """
    One moderation incident from detection to resolution.

    Attributes:
        message: The offending message.
        member: Its author, the case subject.
        reason: Text or media rejection that opened the case.
        state: Current :class:`CaseState`.
        moderator: Who decided the case, once decided.
    """

    def __init__(
        self,
        *,
        message: discord.Message,
        member: discord.Member,
        reason: RejectionReason,
        mod_channel: discord.abc.Messageable,
        mod_role_id: RoleID,
        muted_role_id: RoleID,
        allow_list: AllowList,
        decision_timeout: timedelta = DEFAULT_DECISION_TIMEOUT,
        allowlist_duration: timedelta = DEFAULT_ALLOWLIST_DURATION,
        ban_delete_message_days: int = 3,
        ban_reason: str = DEFAULT_BAN_REASON,
        view_factory: Callable[["ModerationCase"], discord.ui.View] = ModerationDecisionView,
    ) -> None:
        self.message = message
        self.member = member
        self.reason = reason
        self.mod_channel = mod_channel
        self.mod_role_id = RoleID(mod_role_id)
        self.muted_role_id = RoleID(muted_role_id)
        self.allow_list = allow_list
        self.decision_timeout = decision_timeout
        self.allowlist_duration = allowlist_duration
        self.ban_delete_message_days = ban_delete_message_days
        self.ban_reason = ban_reason
        self._view_factory = view_factory

        self.state = CaseState.DETECTED
        self.moderator: discord.abc.User | None = None
        self.muted_role_applied = False
        self.evidence_message: discord.Message | None = None
        self.report_message: discord.Message | None = None
        self.view: discord.ui.View | None = None
        self._decision: asyncio.Future[Tuple[ModeratorDecision, Any]] = asyncio.get_running_loop().create_future()

    @property
    def subject(self) -> UserID:
        return UserID(self.member.id)

    @property
    def decided(self) -> bool:
        return self._decision.done()

    def __repr__(self) -> str:
        return f"ModerationCase(subject={self.subject}, message={self.message.id}, state={self.state})"

    # --------------------------
    # Entry point
    # --------------------------
    async def run(self) -> CaseState:
        """Drive the case to a resolved state and return it.

        Raises:
            PlatformError: If a committed Discord mutation fails.
        """
        try:
            await self.mute()
            await self.post_report()
            await self.await_resolution()
        finally:
            if self.view is not None:
                self.view.stop()
            if self.state.is_resolved:
                await self.discard_evidence()
        return self.state

    # --------------------------
    # Transitions
    # --------------------------
    async def mute(self) -> None:
        """DETECTED -> MUTED: archive evidence, delete the message, apply the muted role."""
        evidence_url = self.reason.evidence_url
        if evidence_url:
            try:
                self.evidence_message = await self.mod_channel.send(content=evidence_url)
            except discord.HTTPException as exc:
                logger.warning("[CASE] Could not archive evidence %s: %s", evidence_url, exc)

        await self._platform(self.message.delete(), "delete the offending message")
        await self._platform(
            self.member.add_roles(discord.Object(id=self.muted_role_id.to_int()), reason=self.reason.describe()),
            "apply the muted role",
        )
        self.muted_role_applied = True
        self.state = CaseState.MUTED
        logger.info("[CASE] Muted %s for %s", self.member, self.reason.describe())

    async def post_report(self) -> None:
        """MUTED -> AWAITING_DECISION: post the report with decision buttons."""
        role = discord.Object(id=self.mod_role_id.to_int())
        self.view = self._view_factory(self)
        self.report_message = await self._platform(
            self.mod_channel.send(
                content=f"<@&{self.mod_role_id}>",
                embed=build_report_embed(self.reason, self.member, self.message),
                view=self.view,
                allowed_mentions=discord.AllowedMentions(everyone=False, users=False, roles=[role]),
            ),
            "post the moderator report",
        )
        self.state = CaseState.AWAITING_DECISION

    async def await_resolution(self) -> CaseState:
        """Wait for the first decision or the timeout, then apply it."""
        try:
            decision, interaction = await asyncio.wait_for(
                self._decision, timeout=self.decision_timeout.total_seconds()
            )
        except asyncio.TimeoutError:
            if self._decision.done() and not self._decision.cancelled():
                # A press accepted in the same loop iteration as the deadline still wins
                await self._apply(*self._decision.result())
                return self.state
            # wait_for cancelled the future, so late presses are rejected from here on
            logger.info("[CASE] No decision for %s within %s", self.member, self.decision_timeout)
            await self._resolve_timeout()
            return self.state

        await self._apply(decision, interaction)
        return self.state

    def submit(self, custom_id: str | None, interaction: Any = None) -> SubmissionResult:
        """Offer a moderator interaction to the case.

        Only the first valid decision is accepted. Runs on the event loop, so
        two presses can never both be accepted.
        """
        if self._decision.done():
            return SubmissionResult.ALREADY_DECIDED
        decision = ModeratorDecision.from_custom_id(custom_id)
        if decision is None:
            logger.debug("[CASE] Ignoring unknown interaction id %r", custom_id)
            return SubmissionResult.INVALID
        self._decision.set_result((decision, interaction))
        return SubmissionResult.ACCEPTED

    async def _apply(self, decision: ModeratorDecision, interaction: Any) -> None:
        self.moderator = getattr(interaction, "user", None)
        logger.info("[CASE] %s chose %s for %s", self.moderator, decision, self.member)
        await self._acknowledge(interaction)

        if decision is ModeratorDecision.BAN:
            await self._platform(
                self.member.ban(
                    delete_message_seconds=self.ban_delete_message_days * SECONDS_PER_DAY,
                    reason=self.ban_reason,
                ),
                "ban the member",
            )
        elif decision is ModeratorDecision.UNMUTE:
            await self._remove_muted_role()
            await self._notify(UNMUTED_DM)
        elif decision is ModeratorDecision.ALLOWLIST:
            self.allow_list.grant(self.subject, self.allowlist_duration)
            await self._remove_muted_role()
            await self._notify(ALLOWLISTED_DM)

        self.state = decision.resolved_state

        if interaction is not None and self.moderator is not None:
            await self._platform(
                interaction.edit_original_response(
                    content=PROBLEM_SOLVED,
                    embed=build_resolution_embed(decision, self.moderator, self.member),
                    view=None,
                ),
                "log the resolution",
            )

    async def _acknowledge(self, interaction: Any) -> None:
        """Defer the button interaction before the slower platform actions run."""
        if interaction is None or interaction.response.is_done():
            return
        try:
            await interaction.response.defer()
        except discord.HTTPException as exc:
            logger.warning("[CASE] Could not acknowledge decision from %s: %s", self.moderator, exc)

    async def _resolve_timeout(self) -> None:
        await self._remove_muted_role()
        self.state = CaseState.TIMED_OUT
        if self.report_message is not None:
            await self._platform(self.report_message.reply(TIMED_OUT_NOTICE), "post the timeout notice")

    # --------------------------
    # Helpers
    # --------------------------
    async def _remove_muted_role(self) -> None:
        await self._platform(
            self.member.remove_roles(discord.Object(id=self.muted_role_id.to_int())),
            "remove the muted role",
        )
        self.muted_role_applied = False

    async def _notify(self, text: str) -> None:
        try:
            await self.member.send(text)
        except discord.HTTPException as exc:
            logger.debug("[CASE] Could not DM %s: %s", self.member, exc)

    async def discard_evidence(self) -> None:
        if self.evidence_message is None:
            return
        try:
            await self.evidence_message.delete()
        except discord.HTTPException as exc:
            logger.debug("[CASE] Could not delete archived evidence: %s", exc)
        self.evidence_message = None

    async def _platform(self, action: Awaitable[T], description: str) -> T:
        try:
            return await action
        except discord.HTTPException as exc:
            raise PlatformError(
                f"Failed to {description}: {exc}",
                {"subject": str(self.subject), "state": str(self.state)},
            ) from exc
