"""
discord_utils.py
================

Low-level Discord helpers used by the slash commands.

Stateless: channel permission checks, guild-wide message search, and
bounded-concurrency bulk deletion.
"""

import asyncio
import datetime
from typing import Iterable, List

import discord

from modshield.util.logger import get_logger

logger = get_logger("discord_utils")

PURGE_WINDOW = datetime.timedelta(days=1)
MAX_CONCURRENT_DELETES = 10


def bot_can_manage_messages(channel: discord.TextChannel, guild: discord.Guild) -> bool:
    """
    Determine if the bot can read history and manage messages in a text channel.

    Args:
        channel (discord.TextChannel): The channel to check permissions for.
        guild (discord.Guild): The guild context to resolve the bot's member object.

    Returns:
        bool: True if the bot can read and manage messages, False otherwise.
    """
    me = getattr(guild, "me", None)
    if me is None:
        return True

    permissions = channel.permissions_for(me)
    return permissions.read_message_history and permissions.manage_messages


def iter_moderatable_channels(guild: discord.Guild):
    """
    Iterate over text channels in a guild where the bot can safely manage messages.

    Yields:
        discord.TextChannel: Channels suitable for moderation actions.
    """
    for channel in getattr(guild, "text_channels", []):
        if bot_can_manage_messages(channel, guild):
            yield channel


def has_permissions(application_context: discord.ApplicationContext, **required_permissions) -> bool:
    """
    Check if the command issuer has all specified permissions in the guild.

    Args:
        application_context (discord.ApplicationContext): The command context.
        **required_permissions: Permission flags to check.

    Returns:
        bool: True if all permissions are present, False otherwise.
    """
    if not isinstance(application_context.author, discord.Member):
        return False
    return all(getattr(application_context.author.guild_permissions, permission_name, False) for permission_name in required_permissions)


async def search_channel_messages(
    channel: discord.TextChannel,
    search_string: str,
    after: datetime.datetime,
    exclude_author_id: int | None = None,
) -> List[discord.Message]:
    """
    Collect messages in ``channel`` newer than ``after`` whose content contains ``search_string``.

    Channels the bot cannot read yield no messages.
    """
    matches: List[discord.Message] = []
    try:
        async for message in channel.history(limit=None, after=after):
            if exclude_author_id is not None and message.author.id == exclude_author_id:
                continue
            if search_string in (message.content or ""):
                matches.append(message)
    except discord.HTTPException as exc:
        logger.warning(f"Could not search {getattr(channel, 'name', channel)}: {exc}")
    return matches


async def search_guild_messages(
    guild: discord.Guild,
    search_string: str,
    exclude_author_id: int | None = None,
    window: datetime.timedelta = PURGE_WINDOW,
) -> List[discord.Message]:
    """
    Search every moderatable text channel of ``guild`` concurrently.

    Returns:
        list[discord.Message]: Matching messages from the last ``window``.
    """
    after = datetime.datetime.now(datetime.timezone.utc) - window
    results = await asyncio.gather(
        *(
            search_channel_messages(channel, search_string, after, exclude_author_id)
            for channel in iter_moderatable_channels(guild)
        )
    )
    return [message for channel_matches in results for message in channel_matches]


def unique_author_names(messages: Iterable[discord.Message]) -> List[str]:
    """Author names of ``messages`` in first-seen order, without duplicates."""
    names: List[str] = []
    for message in messages:
        name = message.author.name
        if name not in names:
            names.append(name)
    return names


async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning(f"No permission to delete message {message.id}")
    except discord.HTTPException as exc:
        logger.error(f"Error deleting message {message.id}: {exc}")
    return False


async def delete_messages_concurrently(
    messages: Iterable[discord.Message],
    max_concurrency: int = MAX_CONCURRENT_DELETES,
) -> int:
    """
    Delete ``messages`` with at most ``max_concurrency`` deletions in flight.

    Returns:
        int: Number of messages deleted.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def delete_one(message: discord.Message) -> bool:
        async with semaphore:
            return await safe_delete_message(message)

    results = await asyncio.gather(*(delete_one(message) for message in messages))
    return sum(1 for deleted in results if deleted)
