"""
Voice announcement pipeline.

One announcement: resolve the channel, fetch speech (or build a test tone),
connect, wait until the connection is ready, stream the FFmpeg-transcoded
audio, tear everything down. Teardown runs on every exit path, including the
hard timeout.
"""
import asyncio
import logging
import os
from typing import Any, Callable, Optional

import aiohttp
import discord

from relay.clients.tts import TTSClient
from relay.constants import (
    FFMPEG_OPTIONS,
    TEST_TONE_FREQUENCY,
    TEST_TONE_SECONDS,
    VOICE_READY_TIMEOUT_SECONDS,
    VOICE_TIMEOUT_SECONDS,
)
from relay.errors import VoiceConnectTimeout
from relay.models.payment import PaidSession
from relay.services.notifications import format_amount

logger = logging.getLogger(__name__)

READY_POLL_INTERVAL = 0.1


def should_announce(amount: int, name: Optional[str], min_amount: int, test_name: str) -> bool:
    """Announce big enough payments, or any payment made under the test name"""
    if amount >= min_amount:
        return True
    return bool(name and test_name and name.strip().casefold() == test_name.strip().casefold())


def announcement_text(paid: PaidSession) -> str:
    metadata = paid["metadata"]
    name = metadata.get("name")
    message = metadata.get("message")
    if name and message:
        return f"New request from {name}: {message}"
    if name:
        return f"New {paid['tier']} purchase from {name}"
    return f"New {paid['tier']} purchase, {format_amount(paid['amount'], paid['currency'])}"


class VoiceAnnouncer:
    """Plays one announcement at a time in the configured voice channel"""

    def __init__(
        self,
        bot: Any,
        channel_id: Optional[int],
        tts: TTSClient,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = VOICE_TIMEOUT_SECONDS,
        ready_timeout: float = VOICE_READY_TIMEOUT_SECONDS,
        source_factory: Optional[Callable[[Optional[str]], Any]] = None,
    ):
        self.bot = bot
        self.channel_id = channel_id
        self.tts = tts
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.ready_timeout = ready_timeout
        self.source_factory = source_factory or self._ffmpeg_source
        self.state = "idle"

    def _ffmpeg_source(self, path: Optional[str]) -> discord.AudioSource:
        """FFmpeg transcodes into the 48 kHz stereo s16le PCM the voice transport expects"""
        if path is None:
            tone = f"sine=frequency={TEST_TONE_FREQUENCY}:duration={TEST_TONE_SECONDS}"
            return discord.FFmpegPCMAudio(
                tone,
                executable=self.ffmpeg_path,
                before_options="-f lavfi",
                options=FFMPEG_OPTIONS,
            )
        return discord.FFmpegPCMAudio(path, executable=self.ffmpeg_path, options=FFMPEG_OPTIONS)

    async def announce(self, text: str) -> bool:
        """
        Runs the pipeline within the hard timeout

        Returns:
            True if the audio played to the end

        Raises:
            VoiceTargetNotFound: guild or channel missing (nothing was connected)
            VoiceConnectTimeout: connection did not become ready in time
        """
        channel = self.bot.voice_channel(self.channel_id)
        try:
            return await asyncio.wait_for(self._run(channel, text), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Voice announcement aborted after {self.timeout}s")
            return False

    async def _run(self, channel: Any, text: str) -> bool:
        voice_client = None
        source = None
        temp_path = None
        try:
            temp_path = await self._fetch_speech(text)
            source = self.source_factory(temp_path)

            self.state = "connecting"
            try:
                voice_client = await channel.connect(
                    timeout=self.ready_timeout, reconnect=False, self_deaf=True
                )
            except asyncio.TimeoutError as e:
                raise VoiceConnectTimeout(
                    f"Voice connection to {channel.id} not ready after {self.ready_timeout}s"
                ) from e

            self.state = "waiting_ready"
            await self._wait_ready(voice_client)

            self.state = "playing"
            return await self._play(voice_client, source)
        finally:
            if voice_client is None:
                # connect() registers the client before the handshake, so a cancelled
                # connect leaves a half-open client on the guild
                voice_client = channel.guild.voice_client
            await self._cleanup(voice_client, source, temp_path)
            self.state = "idle"

    async def _fetch_speech(self, text: str) -> Optional[str]:
        """Path of the speech file, or None to fall back to the test tone"""
        if not self.tts.enabled:
            return None
        try:
            return await self.tts.fetch_to_file(text)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"TTS fetch failed, using test tone: {e}")
            return None

    async def _wait_ready(self, voice_client: Any) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ready_timeout
        while not voice_client.is_connected():
            if loop.time() >= deadline:
                raise VoiceConnectTimeout(f"Voice connection not ready after {self.ready_timeout}s")
            await asyncio.sleep(READY_POLL_INTERVAL)

    async def _play(self, voice_client: Any, source: Any) -> bool:
        loop = asyncio.get_running_loop()
        finished = asyncio.Event()
        errors: list[Exception] = []

        def after(error: Optional[Exception]) -> None:
            # Called from the player thread
            if error:
                errors.append(error)
            loop.call_soon_threadsafe(finished.set)

        voice_client.play(source, after=after)
        await finished.wait()

        if errors:
            logger.error(f"❌ Voice playback failed: {errors[0]}")
            return False
        logger.info("🔊 Voice announcement played")
        return True

    async def _cleanup(self, voice_client: Any, source: Any, temp_path: Optional[str]) -> None:
        if voice_client is not None:
            try:
                if voice_client.is_playing():
                    voice_client.stop()
                await voice_client.disconnect(force=True)
            except Exception as e:
                logger.warning(f"Voice disconnect failed: {e}")
        if source is not None:
            try:
                source.cleanup()
            except Exception as e:
                logger.warning(f"Audio source cleanup failed: {e}")
        if temp_path:
            try:
                os.remove(temp_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not delete {temp_path}: {e}")
