import asyncio
import logging

from relay.constants import VOICE_QUEUE_SIZE
from relay.errors import VoiceError
from relay.services.voice import VoiceAnnouncer

logger = logging.getLogger(__name__)


class AnnouncementQueue:
    """Serializes voice announcements: one in flight, a few waiting, the rest rejected"""

    def __init__(self, announcer: VoiceAnnouncer, maxsize: int = VOICE_QUEUE_SIZE):
        self.announcer = announcer
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)

    def submit(self, text: str) -> bool:
        """Enqueues an announcement without waiting. False if the queue is full"""
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning(f"🔇 Announcement queue full, dropping: {text!r}")
            return False
        logger.info(f"📢 Announcement queued ({self._queue.qsize()} waiting)")
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Waits until every queued announcement has been handled"""
        await self._queue.join()

    async def run(self):
        """Worker loop, started once as a background task"""
        logger.info("🔄 Announcement worker started")

        try:
            while True:
                text = await self._queue.get()
                try:
                    await self.announcer.announce(text)
                except VoiceError as e:
                    logger.error(f"❌ Voice announcement failed: {e}")
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    # Keep serving the queue after unexpected errors
                    logger.exception(f"Unexpected error in voice announcement: {e}")
                finally:
                    self._queue.task_done()

        except asyncio.CancelledError:
            logger.info("✅ Announcement worker stopped")
            raise
