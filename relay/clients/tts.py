"""Text-to-speech fetch by URL"""
import logging
import tempfile
from urllib.parse import quote

import aiohttp

from relay.constants import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class TTSClient:
    """Downloads synthesized speech for a text into a temp file"""

    def __init__(self, url_template: str):
        self.url_template = url_template

    @property
    def enabled(self) -> bool:
        return bool(self.url_template)

    def build_url(self, text: str) -> str:
        return self.url_template.replace("{text}", quote(text))

    async def fetch_to_file(self, text: str) -> str:
        """
        Fetches speech audio and writes it to a temp file

        Returns:
            Path of the temp file; the caller deletes it

        Raises:
            aiohttp.ClientError: fetch failed or returned a non-2xx status
        """
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(self.build_url(text), raise_for_status=True) as response:
                audio = await response.read()

        with tempfile.NamedTemporaryFile(prefix="relay-tts-", suffix=".mp3", delete=False) as f:
            f.write(audio)
        logger.info(f"🗣️ TTS audio fetched ({len(audio)} bytes)")
        return f.name
