"""Client for the peer site that stores issued access keys"""
import logging

import aiohttp

from relay.constants import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class PeerSiteClient:
    """Forwards access keys to the peer site's store endpoint"""

    def __init__(self, base_url: str, shared_secret: str):
        self.base_url = base_url.rstrip("/")
        self.shared_secret = shared_secret

    @property
    def store_url(self) -> str:
        return f"{self.base_url}/api/store-key"

    async def store_key(self, key: str, tier: str, session_id: str) -> bool:
        """
        Sends the key to the peer site

        Returns:
            True if the peer site accepted the key. Failures are logged, never raised.
        """
        if not self.base_url:
            logger.error(f"PEER_SITE_URL is not set, key for session {session_id} not stored")
            return False

        payload = {
            "key": key,
            "tier": tier,
            "session_id": session_id,
            "secret": self.shared_secret,
        }
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.store_url, json=payload) as response:
                    if response.status >= 300:
                        body = await response.text()
                        logger.error(
                            f"❌ Peer site rejected key for session {session_id}: "
                            f"HTTP {response.status} {body[:200]}"
                        )
                        return False
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error(f"❌ Peer site unreachable, key for session {session_id} not stored: {e}")
            return False

        logger.info(f"🔑 Key for session {session_id} stored on peer site ({tier})")
        return True
