import asyncio
import logging
from aiohttp import web

from relay.config import Config, setup_logging
from relay.constants import TIERS
from relay.clients.discord_bot import RelayBot
from relay.clients.tts import TTSClient
from relay.background.announcements import AnnouncementQueue
from relay.services.voice import VoiceAnnouncer
from relay.utils.tasks import BackgroundTasks
from relay.web.server import create_app

logger = logging.getLogger(__name__)


def build_announcements(config: Config, bot: RelayBot) -> AnnouncementQueue:
    announcer = VoiceAnnouncer(
        bot,
        config.discord_voice_channel_id,
        TTSClient(config.tts_url_template),
        ffmpeg_path=config.ffmpeg_path,
        timeout=config.voice_timeout,
        ready_timeout=config.voice_ready_timeout,
    )
    return AnnouncementQueue(announcer)


def log_banner(config: Config) -> None:
    logger.info(f"🚀 Checkout relay running on {config.host}:{config.port}")
    logger.info(f"🌐 {config.checkout_domain or config.domain}")
    for tier in TIERS:
        logger.info(f"📦 {tier} product: {config.product_id(tier) or '⚠️  NOT SET'}")
    if not config.peer_site_url:
        logger.warning("⚠️ PEER_SITE_URL is not set, access keys will not be stored")


async def main():
    """Starts the web server and the Discord bot in one event loop"""
    config = Config.from_env()
    setup_logging(config.log_level)

    bot = RelayBot(config) if config.discord_bot_token else None
    if bot is None:
        logger.warning("⚠️ DISCORD_BOT_TOKEN is not set, role grants and voice are disabled")

    announcements = None
    if bot is not None and config.discord_voice_channel_id:
        announcements = build_announcements(config, bot)

    tasks = BackgroundTasks()
    app = create_app(config, bot=bot, announcements=announcements, tasks=tasks)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    log_banner(config)

    if announcements is not None:
        tasks.spawn(announcements.run(), name="announcement-worker")

    try:
        if bot is not None:
            await bot.start(config.discord_bot_token)
        else:
            await asyncio.Event().wait()
    finally:
        await tasks.shutdown()
        await runner.cleanup()
        if bot is not None:
            await bot.close()
        logger.info("👋 Checkout relay stopped")
