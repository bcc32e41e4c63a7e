import os
import logging
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from relay.constants import (
    TIERS,
    POLL_ATTEMPTS,
    POLL_DELAY_SECONDS,
    LEDGER_TTL_SECONDS,
    VOICE_TIMEOUT_SECONDS,
    VOICE_TIMEOUT_MIN,
    VOICE_TIMEOUT_MAX,
    VOICE_READY_TIMEOUT_SECONDS,
)

# Load variables from .env (local runs)
load_dotenv()


class Config(BaseModel):
    """Relay configuration with validation"""

    stripe_secret_key: str = Field(..., description="Stripe secret key (live or default mode)")
    stripe_webhook_secret: str = Field(..., description="Stripe webhook signing secret")
    stripe_test_secret_key: str = Field(default="", description="Stripe test-mode key for the test tier")

    # Stripe product id per tier
    products: dict[str, str] = Field(default_factory=dict)

    # Public origins
    domain: str = Field(default="http://localhost:4000", description="Own site (success/cancel pages)")
    checkout_domain: str = Field(default="", description="Public origin of this service")
    peer_site_url: str = Field(default="", description="Peer site storing access keys")
    peer_shared_secret: str = Field(default="", description="Shared secret for the peer site")

    # Discord
    discord_bot_token: str = Field(default="")
    discord_guild_id: Optional[int] = None
    discord_role_id: Optional[int] = None
    discord_notify_channel_id: Optional[int] = None
    discord_voice_channel_id: Optional[int] = None
    monitor_webhook_url: str = Field(default="")

    # Voice announcements
    ffmpeg_path: str = Field(default="ffmpeg")
    tts_url_template: str = Field(default="", description="TTS URL with a {text} placeholder")
    voice_min_amount: int = Field(default=500, description="Minimum amount (minor units) to announce")
    voice_test_name: str = Field(default="test")
    voice_timeout: float = Field(default=VOICE_TIMEOUT_SECONDS)
    voice_ready_timeout: float = Field(default=VOICE_READY_TIMEOUT_SECONDS)

    # Payment polling / idempotency
    poll_attempts: int = Field(default=POLL_ATTEMPTS, ge=1)
    poll_delay: float = Field(default=POLL_DELAY_SECONDS, ge=0)
    ledger_ttl: float = Field(default=LEDGER_TTL_SECONDS, gt=0)

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000)
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("domain", "checkout_domain", "peer_site_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("voice_timeout")
    @classmethod
    def clamp_voice_timeout(cls, v: float) -> float:
        """Hard ceiling for one announcement stays within 15-30 seconds"""
        return min(max(v, VOICE_TIMEOUT_MIN), VOICE_TIMEOUT_MAX)

    def product_id(self, tier: str) -> str:
        return (self.products.get(tier) or "").strip()

    @staticmethod
    def product_setting(tier: str) -> str:
        """Environment variable holding the product id of a tier"""
        return f"{tier.upper()}_PRODUCT_ID"

    @classmethod
    def from_env(cls) -> "Config":
        """Builds the config from environment variables"""
        stripe_key = os.getenv("STRIPE_SECRET_KEY")
        webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")

        if not stripe_key:
            raise ValueError("STRIPE_SECRET_KEY is not set")
        if not webhook_secret:
            raise ValueError("STRIPE_WEBHOOK_SECRET is not set")

        port = int(os.getenv("PORT", "4000"))
        values = {
            "stripe_secret_key": stripe_key,
            "stripe_webhook_secret": webhook_secret,
            "stripe_test_secret_key": os.getenv("STRIPE_TEST_SECRET_KEY", ""),
            "products": {tier: os.getenv(cls.product_setting(tier), "") for tier in TIERS},
            "domain": os.getenv("DOMAIN") or f"http://localhost:{port}",
            "checkout_domain": os.getenv("CHECKOUT_DOMAIN", ""),
            "peer_site_url": os.getenv("PEER_SITE_URL", ""),
            "peer_shared_secret": os.getenv("PEER_SHARED_SECRET", ""),
            "discord_bot_token": os.getenv("DISCORD_BOT_TOKEN", ""),
            "discord_guild_id": os.getenv("DISCORD_GUILD_ID") or None,
            "discord_role_id": os.getenv("DISCORD_ROLE_ID") or None,
            "discord_notify_channel_id": os.getenv("DISCORD_NOTIFY_CHANNEL_ID") or None,
            "discord_voice_channel_id": os.getenv("DISCORD_VOICE_CHANNEL_ID") or None,
            "monitor_webhook_url": os.getenv("MONITOR_WEBHOOK_URL", ""),
            "ffmpeg_path": os.getenv("FFMPEG_PATH") or "ffmpeg",
            "tts_url_template": os.getenv("TTS_URL_TEMPLATE", ""),
            "voice_test_name": os.getenv("VOICE_TEST_NAME") or "test",
            "host": os.getenv("HOST", "0.0.0.0"),
            "port": port,
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }

        # Numeric overrides keep their defaults when unset
        optional_numbers = {
            "voice_min_amount": "VOICE_MIN_AMOUNT",
            "voice_timeout": "VOICE_TIMEOUT",
            "voice_ready_timeout": "VOICE_READY_TIMEOUT",
            "poll_attempts": "POLL_ATTEMPTS",
            "poll_delay": "POLL_DELAY",
            "ledger_ttl": "LEDGER_TTL",
        }
        for field, env_name in optional_numbers.items():
            raw = os.getenv(env_name)
            if raw:
                values[field] = raw

        return cls(**values)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configures application logging"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # discord.py is chatty on INFO
    logging.getLogger("discord").setLevel(logging.WARNING)
    return logging.getLogger("relay")
