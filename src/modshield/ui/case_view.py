"""
Decision buttons attached to a moderator report.

The view does not act on its own; every press is offered to the owning case,
which accepts the first valid decision and applies it.
"""

from __future__ import annotations

from typing import Protocol

import discord

from modshield.datatypes.case_datatypes import ModeratorDecision, SubmissionResult
from modshield.ui.case_embeds import ALREADY_RESOLVED, INVALID_RESPONSE
from modshield.util.logger import get_logger

logger = get_logger("case_view")


class DecisionSink(Protocol):
    def submit(self, custom_id: str | None, interaction: discord.Interaction | None = None) -> SubmissionResult:
        ...


class ModerationDecisionView(discord.ui.View):
    """Unmute / 1 day allowlist / Ban buttons for one moderation case.

    The case owns the decision timeout, so the view itself never times out and
    is stopped by the case once it resolves.
    """

    def __init__(self, case: DecisionSink):
        super().__init__(timeout=None)
        self.case = case

    @discord.ui.button(
        label="Unmute",
        emoji="😇",
        style=discord.ButtonStyle.success,
        custom_id=ModeratorDecision.UNMUTE.value,
    )
    async def unmute_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        await self.handle_press(interaction)

    @discord.ui.button(
        label="1 day allowlist",
        emoji="🟢",
        style=discord.ButtonStyle.secondary,
        custom_id=ModeratorDecision.ALLOWLIST.value,
    )
    async def allowlist_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        await self.handle_press(interaction)

    @discord.ui.button(
        label="Ban",
        emoji="🔨",
        style=discord.ButtonStyle.danger,
        custom_id=ModeratorDecision.BAN.value,
    )
    async def ban_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        await self.handle_press(interaction)

    async def handle_press(self, interaction: discord.Interaction) -> SubmissionResult:
        """Offer the pressed button to the case and answer rejected presses."""
        custom_id = interaction.custom_id
        result = self.case.submit(custom_id, interaction)
        logger.debug("[CASE VIEW] %s pressed %r -> %s", interaction.user, custom_id, result.value)

        # Accepted presses are deferred and answered by the case once the action is applied
        if result is SubmissionResult.INVALID:
            await interaction.response.edit_message(content=INVALID_RESPONSE)
        elif result is SubmissionResult.ALREADY_DECIDED:
            await interaction.response.send_message(ALREADY_RESOLVED, ephemeral=True)
        return result
