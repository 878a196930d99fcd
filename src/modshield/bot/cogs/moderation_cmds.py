"""
Moderation cog: manual clean-up commands for administrators.

Provides ``/purge``, which finds messages from the last 24 hours containing a
search string across every text channel and, once confirmed, deletes them.

Permissions
- The command is registered with ``administrator`` as the default member
  permission and re-checks it at invocation time.
"""

import discord
from discord import Option
from discord.ext import commands

from modshield.util.discord_utils import (
    delete_messages_concurrently,
    has_permissions,
    search_guild_messages,
    unique_author_names,
)
from modshield.util.logger import get_logger

logger = get_logger("moderation_cog")


class ModerationCommandsCog(commands.Cog):
    """Cog containing the administrator ``/purge`` command."""

    def __init__(self, discord_bot_instance):
        """
        Parameters
        ----------
        discord_bot_instance:
            Active :class:`discord.Bot` instance.
        """
        self.discord_bot_instance = discord_bot_instance
        logger.info("Moderation cog loaded")

    @commands.slash_command(
        name="purge",
        description="Delete messages from the last day containing a search string.",
        default_member_permissions=discord.Permissions(administrator=True),
    )
    async def purge(
        self,
        ctx: discord.ApplicationContext,
        search_string: Option(str, "Text the messages must contain.", required=True),  # type: ignore
        confirm: Option(bool, "Actually delete the matching messages.", default=False),  # type: ignore
    ) -> None:
        """Search for, and optionally delete, recent messages containing ``search_string``."""
        await ctx.defer()

        if ctx.guild is None or not has_permissions(ctx, administrator=True):
            await ctx.send_followup("You do not have permission to use this command.")
            return

        messages = await search_guild_messages(ctx.guild, search_string, exclude_author_id=ctx.author.id)

        if not confirm:
            authors = ", ".join(unique_author_names(messages))
            await ctx.send_followup(
                f"Found {len(messages)} messages to remove sent by {authors}\n"
                f"rerun with `/purge search_string:{search_string} confirm:True` to delete them"
            )
            return

        await ctx.send_followup("Starting to purge...")
        deleted = await delete_messages_concurrently(messages)
        logger.info(
            "[PURGE] %s purged %d/%d messages containing %r in %s",
            ctx.author, deleted, len(messages), search_string, ctx.guild.name,
        )
        await ctx.send_followup("Purge complete")


def setup(discord_bot_instance):
    """Cog setup entry point."""
    discord_bot_instance.add_cog(ModerationCommandsCog(discord_bot_instance))
