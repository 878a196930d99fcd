"""
Per-message screening: exemptions, text heuristic, media pipeline, case dispatch.
"""

from __future__ import annotations

import asyncio
from typing import Set

import discord

from modshield.configuration.app_configuration import AppConfig, BotSettings, app_config
from modshield.datatypes.case_datatypes import ScreeningOutcome
from modshield.datatypes.content_datatypes import MediaRejection, RejectionReason, TextRejection
from modshield.detection.text_heuristics import check_is_phishing_link
from modshield.errors import PlatformError
from modshield.moderation.allow_list import AllowList
from modshield.moderation.media_pipeline import MediaClassificationPipeline
from modshield.moderation.moderation_case import ModerationCase
from modshield.util.logger import get_logger

logger = get_logger("screening")


class ScreeningService:
    """Screens guild messages and opens a moderation case for each violation.

    Attributes:
        bot: The running Discord client.
        settings: Moderator channel and role ids.
        allow_list: Exemptions and temporary allow-list grants.
        media_pipeline: Image/GIF/video screening, or ``None`` when disabled.
        config: YAML tuning values for cases.
    """

    def __init__(
        self,
        bot: discord.Client,
        settings: BotSettings,
        allow_list: AllowList,
        media_pipeline: MediaClassificationPipeline | None = None,
        config: AppConfig = app_config,
    ) -> None:
        self.bot = bot
        self.settings = settings
        self.allow_list = allow_list
        self.media_pipeline = media_pipeline if settings.media_scan_enabled else None
        self.config = config
        self._in_flight: Set[int] = set()

    async def get_mod_channel(self) -> discord.abc.Messageable:
        channel_id = self.settings.mod_channel_id.to_int()
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def resolve_member(self, message: discord.Message) -> discord.Member | None:
        author = message.author
        if isinstance(author, discord.Member):
            return author
        guild = message.guild
        if guild is None:
            return None
        member = guild.get_member(author.id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(author.id)
        except discord.HTTPException as exc:
            logger.debug("[SCREENING] Author %s of message %s is not a member: %s", author.id, message.id, exc)
            return None

    async def find_violation(self, message: discord.Message) -> RejectionReason | None:
        """Run the text heuristic and the media scan; text short-circuits media."""
        media_task: asyncio.Task | None = None
        if self.media_pipeline is not None:
            media_task = asyncio.create_task(self.media_pipeline.classify_message(message))

        spam_reason = check_is_phishing_link(message.content or "")
        if spam_reason is not None:
            if media_task is not None:
                media_task.cancel()
                await asyncio.gather(media_task, return_exceptions=True)
            return TextRejection(spam_reason)

        if media_task is None:
            return None
        verdict = await media_task
        return MediaRejection(verdict) if verdict is not None else None

    def open_case(self, message: discord.Message, member: discord.Member, reason: RejectionReason,
                  mod_channel: discord.abc.Messageable) -> ModerationCase:
        return ModerationCase(
            message=message,
            member=member,
            reason=reason,
            mod_channel=mod_channel,
            mod_role_id=self.settings.mod_role_id,
            muted_role_id=self.settings.muted_role_id,
            allow_list=self.allow_list,
            decision_timeout=self.config.decision_timeout,
            allowlist_duration=self.config.allowlist_duration,
            ban_delete_message_days=self.config.ban_delete_message_days,
            ban_reason=self.config.ban_reason,
        )

    async def on_message(self, message: discord.Message) -> ScreeningOutcome:
        """Screen one created or edited message.

        Returns once any case it opened is resolved or has failed.
        """
        if message.guild is None:
            return ScreeningOutcome.IGNORED
        if message.id in self._in_flight:
            logger.debug("[SCREENING] Message %s already has an open case", message.id)
            return ScreeningOutcome.IGNORED

        member = await self.resolve_member(message)
        if member is None:
            return ScreeningOutcome.IGNORED
        if self.allow_list.is_exempt(member):
            return ScreeningOutcome.EXEMPT

        reason = await self.find_violation(message)
        if reason is None:
            return ScreeningOutcome.CLEAN

        logger.info("[SCREENING] Message %s from %s flagged: %s", message.id, member, reason.describe())
        self._in_flight.add(message.id)
        try:
            mod_channel = await self.get_mod_channel()
            case = self.open_case(message, member, reason, mod_channel)
            state = await case.run()
            logger.info("[SCREENING] Case for %s resolved as %s", member, state)
        except PlatformError as exc:
            logger.error("[SCREENING] Case for %s failed: %s", member, exc)
            await self.report_failure(exc)
        except discord.HTTPException as exc:
            logger.error("[SCREENING] Moderator channel unavailable: %s", exc)
        finally:
            self._in_flight.discard(message.id)
        return ScreeningOutcome.CASE_OPENED

    async def on_raw_message_edit(self, payload: discord.RawMessageUpdateEvent) -> ScreeningOutcome:
        """Fetch an edited message that was not in the cache and screen it."""
        if payload.guild_id is None:
            return ScreeningOutcome.IGNORED
        channel = self.bot.get_channel(payload.channel_id)
        try:
            if channel is None:
                channel = await self.bot.fetch_channel(payload.channel_id)
            message = await channel.fetch_message(payload.message_id)
        except discord.HTTPException as exc:
            logger.debug("[SCREENING] Could not fetch edited message %s: %s", payload.message_id, exc)
            return ScreeningOutcome.IGNORED
        return await self.on_message(message)

    async def report_failure(self, error: Exception) -> None:
        try:
            channel = await self.get_mod_channel()
            await channel.send(f"Something went bad! {error}")
        except discord.HTTPException as exc:
            logger.error("[SCREENING] Could not report failure to moderators: %s", exc)
