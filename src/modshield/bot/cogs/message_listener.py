"""Message listener Cog for modshield.

Routes created and edited guild messages into the screening service.
"""

import discord
from discord.ext import commands

from modshield.moderation.screening import ScreeningService
from modshield.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """Cog responsible for handling message creation and editing events."""

    def __init__(self, discord_bot_instance, screening_service: ScreeningService):
        """
        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        screening_service:
            Service that screens each message and runs moderation cases.
        """
        self.bot = discord_bot_instance
        self.screening_service = screening_service
        logger.info("Message listener cog loaded")

    async def _screen(self, message: discord.Message) -> None:
        try:
            outcome = await self.screening_service.on_message(message)
            logger.debug(f"Screened message {message.id} from {message.author}: {outcome.value}")
        except Exception as e:
            logger.error(f"Error screening message {message.id}: {e}", exc_info=True)

    @commands.Cog.listener(name='on_message')
    async def on_message(self, message: discord.Message):
        """Screen every new guild message."""
        if message.guild is None:
            return
        await self._screen(message)

    @commands.Cog.listener(name='on_message_edit')
    async def on_message_edit(self, before: discord.Message, after: discord.Message):
        """
        Screen the edited message.

        Discord also sends an edit when it resolves a link preview, which is how
        embed thumbnails reach the media scan.
        """
        if after.guild is None:
            return
        await self._screen(after)

    @commands.Cog.listener(name='on_raw_message_edit')
    async def on_raw_message_edit(self, payload: discord.RawMessageUpdateEvent):
        """Screen edits to messages that are not in the message cache."""
        # Cached messages are handled by on_message_edit
        if payload.cached_message is not None:
            return
        try:
            await self.screening_service.on_raw_message_edit(payload)
        except Exception as e:
            logger.error(f"Error screening edited message {payload.message_id}: {e}", exc_info=True)


def setup(discord_bot_instance, screening_service: ScreeningService):
    """
    Register the MessageListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    screening_service:
        The screening service the cog forwards messages to.
    """
    discord_bot_instance.add_cog(MessageListenerCog(discord_bot_instance, screening_service))
