import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modshield.configuration.app_configuration import AppConfig, BotSettings
from modshield.datatypes.case_datatypes import CaseState, ScreeningOutcome
from modshield.datatypes.content_datatypes import (
    ContentLabel,
    MediaRejection,
    MediaVerdict,
    SpamReason,
    TextRejection,
)
from modshield.datatypes.discord_datatypes import ChannelID, RoleID
from modshield.errors import PlatformError
from modshield.moderation.allow_list import AllowList
from modshield.moderation.screening import ScreeningService

MOD_CHANNEL = 900
VERDICT = MediaVerdict(ContentLabel.HENTAI, 0.93, "https://cdn.example/x.png")


def make_settings(media=False):
    return BotSettings(ChannelID(MOD_CHANNEL), RoleID(2), RoleID(3), media_scan_enabled=media)


def make_member(member_id=42, role_ids=(), bot=False):
    member = MagicMock(spec=discord.Member)
    member.id = member_id
    member.bot = bot
    member.roles = [SimpleNamespace(id=r) for r in role_ids]
    return member


def make_message(content="hello there", author=None, guild=True):
    return SimpleNamespace(
        id=10,
        content=content,
        author=author or make_member(),
        guild=SimpleNamespace(id=1) if guild else None,
        embeds=[],
        attachments=[],
    )


class FakePipeline:
    def __init__(self, verdict=None, block=False):
        self.verdict = verdict
        self.block = block
        self.calls = 0
        self.cancelled = False

    async def classify_message(self, message):
        self.calls += 1
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return self.verdict


def make_service(tmp_path, media=False, pipeline=None, allow_list=None):
    mod_channel = MagicMock()
    mod_channel.send = AsyncMock()
    bot = MagicMock()
    bot.get_channel.return_value = mod_channel
    service = ScreeningService(
        bot,
        make_settings(media),
        allow_list if allow_list is not None else AllowList(),
        pipeline,
        AppConfig(tmp_path / "missing.yml"),
    )
    case = MagicMock()
    case.run = AsyncMock(return_value=CaseState.BANNED)
    service.open_case = MagicMock(return_value=case)
    return service, case, mod_channel


@pytest.mark.asyncio
async def test_direct_messages_are_ignored(tmp_path):
    service, case, _ = make_service(tmp_path)

    outcome = await service.on_message(make_message("https://disc0rd.com", guild=False))

    assert outcome is ScreeningOutcome.IGNORED
    service.open_case.assert_not_called()


@pytest.mark.asyncio
async def test_exempt_authors_are_not_screened(tmp_path):
    allow_list = AllowList([77])
    service, _, _ = make_service(tmp_path, allow_list=allow_list)

    bot_outcome = await service.on_message(make_message("https://disc0rd.com", author=make_member(bot=True)))
    trusted_outcome = await service.on_message(make_message("https://disc0rd.com", author=make_member(role_ids=[77])))

    assert bot_outcome is trusted_outcome is ScreeningOutcome.EXEMPT
    service.open_case.assert_not_called()


@pytest.mark.asyncio
async def test_clean_message(tmp_path):
    service, _, _ = make_service(tmp_path)

    assert await service.on_message(make_message("just chatting")) is ScreeningOutcome.CLEAN


@pytest.mark.asyncio
async def test_text_violation_opens_case(tmp_path):
    service, case, _ = make_service(tmp_path)
    message = make_message("discord.gg/girls hot girls")

    outcome = await service.on_message(message)

    assert outcome is ScreeningOutcome.CASE_OPENED
    args = service.open_case.call_args.args
    assert args[0] is message
    assert args[2] == TextRejection(SpamReason.SEXUAL_TERMS)
    case.run.assert_awaited_once()


@pytest.mark.asyncio
async def test_media_verdict_opens_case_when_enabled(tmp_path):
    pipeline = FakePipeline(VERDICT)
    service, _, _ = make_service(tmp_path, media=True, pipeline=pipeline)

    outcome = await service.on_message(make_message("look"))

    assert outcome is ScreeningOutcome.CASE_OPENED
    assert service.open_case.call_args.args[2] == MediaRejection(VERDICT)


@pytest.mark.asyncio
async def test_media_scan_skipped_when_disabled(tmp_path):
    pipeline = FakePipeline(VERDICT)
    service, _, _ = make_service(tmp_path, media=False, pipeline=pipeline)

    assert await service.on_message(make_message("look")) is ScreeningOutcome.CLEAN
    assert pipeline.calls == 0


@pytest.mark.asyncio
async def test_text_violation_short_circuits_media_scan(tmp_path):
    pipeline = FakePipeline(block=True)
    service, _, _ = make_service(tmp_path, media=True, pipeline=pipeline)

    reason = await asyncio.wait_for(service.find_violation(make_message("https://disc0rd.com/gift")), timeout=5)

    assert reason == TextRejection(SpamReason.MISLEADING_URL)
    assert pipeline.cancelled


@pytest.mark.asyncio
async def test_platform_error_is_reported_to_moderators(tmp_path):
    service, case, mod_channel = make_service(tmp_path)
    case.run.side_effect = PlatformError("Failed to ban the member: 403 Forbidden")

    outcome = await service.on_message(make_message("https://disc0rd.com"))

    assert outcome is ScreeningOutcome.CASE_OPENED
    mod_channel.send.assert_awaited_once_with("Something went bad! Failed to ban the member: 403 Forbidden")


@pytest.mark.asyncio
async def test_non_member_author_is_fetched_from_guild(tmp_path):
    service, _, _ = make_service(tmp_path)
    member = make_member(member_id=5)
    guild = SimpleNamespace(id=1, get_member=MagicMock(return_value=None), fetch_member=AsyncMock(return_value=member))
    message = make_message("https://disc0rd.com", author=SimpleNamespace(id=5))
    message.guild = guild

    assert await service.on_message(message) is ScreeningOutcome.CASE_OPENED
    assert service.open_case.call_args.args[1] is member


@pytest.mark.asyncio
async def test_uncached_edit_is_fetched_and_screened(tmp_path):
    service, _, mod_channel = make_service(tmp_path)
    edited = make_message("https://disc0rd.com")
    channel = MagicMock()
    channel.fetch_message = AsyncMock(return_value=edited)
    service.bot.get_channel.side_effect = lambda channel_id: channel if channel_id == 123 else mod_channel
    payload = SimpleNamespace(guild_id=1, channel_id=123, message_id=10)

    outcome = await service.on_raw_message_edit(payload)

    channel.fetch_message.assert_awaited_once_with(10)
    assert outcome is ScreeningOutcome.CASE_OPENED
