"""
Embed builders for moderator reports and the moderation log.
"""

import discord

from modshield.datatypes.case_datatypes import ModeratorDecision
from modshield.datatypes.content_datatypes import RejectionReason

# Discord caps embed descriptions at 4096 characters
MAX_QUOTED_CONTENT = 1500

PROBLEM_SOLVED = "Problem solved"
INVALID_RESPONSE = "Invalid response sent"
ALREADY_RESOLVED = "This case has already been resolved."
TIMED_OUT_NOTICE = "Timed out, unmuting user?"
UNMUTED_DM = "You have been unmuted! Apologies for any confusion"
ALLOWLISTED_DM = "You have been unmuted! You may try and resend your message now."


def redact_content(content: str) -> str:
    """Return ``content`` safe to quote inside an inline code span."""
    redacted = (content or "").replace("`", "'")
    if len(redacted) > MAX_QUOTED_CONTENT:
        redacted = redacted[: MAX_QUOTED_CONTENT - 3] + "..."
    return redacted


def build_report_embed(reason: RejectionReason, member: discord.abc.User, message: discord.Message) -> discord.Embed:
    """
    Create the embed posted to the moderator channel when a case opens.

    Args:
        reason: Why the message was flagged.
        member: The suspected offender.
        message: The flagged message; its mention-resolved content is quoted.

    Returns:
        discord.Embed: Red report embed titled with the reason.
    """
    description = (
        f"{member.mention} sent a suspicious message `{redact_content(message.clean_content)}`\n"
        "Please manually inspect. If it is bad, ban the user."
    )
    embed = discord.Embed(title=reason.describe(), description=description, color=discord.Color.red())
    if reason.evidence_url:
        embed.add_field(name="Evidence", value=reason.evidence_url, inline=False)
    return embed


def build_resolution_embed(
    decision: ModeratorDecision,
    moderator: discord.abc.User,
    member: discord.abc.User,
) -> discord.Embed:
    return discord.Embed(
        title="Moderation Log",
        description=f"{moderator.mention} {decision.log_verb} {member.mention}",
        color=discord.Color.dark_green(),
    )
