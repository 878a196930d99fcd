"""
modshield
=========

A Discord bot that screens guild messages for phishing links and, when
enabled, NSFW images, GIFs and videos. Flagged authors are muted and a
moderator decides between unmuting, a temporary allow-list and a ban.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODSHIELD_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODSHIELD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from modshield.ai.nsfw_classifier import NsfwClassifier, OnnxNsfwModel
from modshield.configuration.app_configuration import AppConfig, BotSettings, app_config
from modshield.errors import ConfigurationError
from modshield.media.frame_source import FrameSource, physical_core_count
from modshield.media.video_decoder import FFmpegVideoDecoder
from modshield.moderation.allow_list import AllowList
from modshield.moderation.media_pipeline import MediaClassificationPipeline
from modshield.moderation.score_aggregator import ScoreAggregator
from modshield.moderation.screening import ScreeningService
from modshield.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents required to read and moderate messages."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


def build_media_pipeline(config: AppConfig) -> MediaClassificationPipeline:
    """Load the classifier weights and wire up decoding and aggregation.

    Raises
    ------
    ConfigurationError
        If the classifier weights cannot be loaded.
    """
    media = config.media
    model = OnnxNsfwModel.load(media.model_path)
    frame_source = FrameSource(
        FFmpegVideoDecoder(media.ffmpeg_path, media.ffprobe_path),
        sample_count=media.video_sample_count,
        fetch_timeout=media.fetch_timeout_seconds,
        channel_capacity=physical_core_count(),
    )
    aggregator = ScoreAggregator(media.thresholds, media.running_average_threshold)
    return MediaClassificationPipeline(
        frame_source,
        NsfwClassifier(model),
        aggregator,
        batch_size=media.video_batch_size,
    )


def load_cogs(discord_bot_instance: discord.Bot, screening_service: ScreeningService, settings: BotSettings) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from modshield.bot.cogs import events_listener, message_listener, moderation_cmds

    events_listener.setup(discord_bot_instance, settings.media_scan_enabled)
    message_listener.setup(discord_bot_instance, screening_service)
    moderation_cmds.setup(discord_bot_instance)

    logger.info("All cogs loaded successfully.")


def create_bot(
    settings: BotSettings,
    media_pipeline: MediaClassificationPipeline | None,
    config: AppConfig = app_config,
) -> discord.Bot:
    """Instantiate the Discord bot, its screening service and all cogs."""
    bot = discord.Bot(intents=build_intents())
    allow_list = AllowList(config.trusted_role_ids)
    screening_service = ScreeningService(bot, settings, allow_list, media_pipeline, config)
    load_cogs(bot, screening_service, settings)
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, media_pipeline: MediaClassificationPipeline | None) -> None:
    """Gracefully stop the Discord bot and the classifier worker pool."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    if media_pipeline is not None:
        media_pipeline.classifier.shutdown()

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap configuration, the classifier and the bot, returning an exit code."""
    token = load_environment()

    try:
        settings = BotSettings.from_env()
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 1

    media_pipeline = None
    if settings.media_scan_enabled:
        try:
            logger.info("Loading NSFW classifier before bot startup…")
            media_pipeline = build_media_pipeline(app_config)
        except ConfigurationError as exc:
            logger.critical("NSFW classifier failed to initialize: %s", exc)
            return 1
    else:
        logger.info("NSFW_FILTER_ENABLED is not set; media screening disabled.")

    try:
        bot = create_bot(settings, media_pipeline)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None, media_pipeline)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, media_pipeline)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting modshield…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
