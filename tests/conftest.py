"""Pytest fixtures: config, fakes for Stripe, the peer site, Discord and voice"""
import asyncio
import hashlib
import hmac
import json
import re
import time
from types import SimpleNamespace
from typing import Any, Optional

import discord
import pytest
import stripe

from relay.clients.stripe_client import StripeClient
from relay.config import Config
from relay.errors import ChatPlatformError, VoiceTargetNotFound

WEBHOOK_SECRET = "whsec_test_secret"


def stripe_session(
    session_id: str = "cs_test_123",
    status: str = "paid",
    tier: str = "basic",
    endpoint: str = "web",
    amount: int = 1000,
    **metadata: str,
) -> dict:
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": status,
        "amount_total": amount,
        "currency": "usd",
        "payment_method_types": ["card"],
        "customer_details": {"email": "buyer@example.com"},
        "metadata": {"tier": tier, "endpoint": endpoint, **metadata},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Builds a Stripe-Signature header the way Stripe does"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_event(event_type: str, obj: dict) -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


class FakeStripe(StripeClient):
    """StripeClient whose SDK calls return scripted Stripe objects; webhook verification stays real"""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET)
        self.prices: dict[str, dict] = {}
        self.scripts: dict[str, list] = {}
        self.retrieve_calls: list[str] = []
        self.price_calls: list[str] = []
        self.created: list[dict] = []
        self.create_error: Optional[Exception] = None

    def script(self, session_id: str, *steps) -> None:
        """Each step is a session dict or an exception; the last step repeats"""
        self.scripts[session_id] = list(steps)

    def _list_prices(self, product_id, api_key):
        self.price_calls.append(product_id)
        price = self.prices.get(product_id)
        data = [{"object": "price", "active": True, "product": product_id, **price}] if price else []
        return stripe.ListObject.construct_from(
            {"object": "list", "data": data, "has_more": False, "url": "/v1/prices"},
            api_key,
        )

    def _create_session(self, api_key, **params):
        if self.create_error:
            raise self.create_error
        self.created.append({
            "price_id": params["line_items"][0]["price"],
            "mode": params["mode"],
            "metadata": params["metadata"],
            "success_url": params["success_url"],
            "cancel_url": params["cancel_url"],
        })
        return stripe.checkout.Session.construct_from(
            {
                "id": "cs_test_new",
                "object": "checkout.session",
                "url": "https://checkout.stripe.com/c/pay/cs_test_new",
            },
            api_key,
        )

    def _retrieve_session(self, session_id, api_key):
        self.retrieve_calls.append(session_id)
        steps = self.scripts.get(session_id)
        if not steps:
            raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "id")
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        return stripe.checkout.Session.construct_from(step, api_key)


class FakePeerSite:
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.stored: list[tuple[str, str, str]] = []

    async def store_key(self, key, tier, session_id):
        self.stored.append((key, tier, session_id))
        return self.accept


class FakeVoiceClient:
    def __init__(self, playback: str = "finish"):
        self.playback = playback
        self.played: list = []
        self.disconnected = False
        self.stopped = False
        self._playing = False

    def is_connected(self):
        return not self.disconnected

    def is_playing(self):
        return self._playing

    def play(self, source, after):
        self.played.append(source)
        self._playing = True
        if self.playback == "finish":
            self._playing = False
            after(None)
        elif self.playback == "error":
            self._playing = False
            after(RuntimeError("ffmpeg exited with code 1"))
        # "hang": never calls after

    def stop(self):
        self.stopped = True
        self._playing = False

    async def disconnect(self, force=False):
        self.disconnected = True
        self._playing = False


class FakeVoiceChannel:
    """Voice channel whose guild tracks the registered voice client, like discord.py"""

    def __init__(self, voice_client: FakeVoiceClient, connect: str = "ok"):
        self.id = 999
        self.guild = SimpleNamespace(voice_client=None)
        self.voice_client = voice_client
        self.connect_mode = connect
        self.connect_calls = 0

    async def connect(self, timeout, reconnect, self_deaf):
        self.connect_calls += 1
        registered = self.guild.voice_client
        if registered is not None and registered.is_connected():
            raise discord.ClientException("Already connected to a voice channel.")

        # registered before the handshake
        self.guild.voice_client = self.voice_client
        if self.connect_mode == "timeout":
            await self.voice_client.disconnect(force=True)
            raise asyncio.TimeoutError()
        if self.connect_mode == "hang":
            await asyncio.Event().wait()
        return self.voice_client


class FakeSource:
    def __init__(self, path):
        self.path = path
        self.cleaned = False

    def cleanup(self):
        self.cleaned = True


class FakeBot:
    """Stands in for RelayBot"""

    def __init__(self, members=None, voice_channel=None):
        self.members = members or []
        self.search_error: Optional[Exception] = None
        self.add_role_error: Optional[Exception] = None
        self.searches: list[str] = []
        self.roles_added: list[tuple[int, int]] = []
        self.embeds: list[tuple[int, Any]] = []
        self.channel = voice_channel
        self.fail_send = False

    def is_ready(self):
        return True

    async def search_members(self, username):
        self.searches.append(username)
        if self.search_error:
            raise self.search_error
        return list(self.members)

    async def add_role(self, member, role_id):
        if self.add_role_error:
            raise self.add_role_error
        self.roles_added.append((member.id, role_id))

    async def send_embed(self, channel_id, embed):
        if self.fail_send:
            raise RuntimeError("Missing Access")
        self.embeds.append((channel_id, embed))

    def voice_channel(self, channel_id):
        if self.channel is None:
            raise VoiceTargetNotFound(f"Voice channel {channel_id} not found")
        return self.channel


def looks_like_access_key(value: str) -> bool:
    return re.fullmatch(r"[A-Za-z0-9]{12}", value) is not None


def member(member_id: int, name: str, global_name: Optional[str] = None, nick: Optional[str] = None):
    return SimpleNamespace(id=member_id, name=name, global_name=global_name, nick=nick)


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def config() -> Config:
    return Config(
        stripe_secret_key="sk_test_fake",
        stripe_webhook_secret=WEBHOOK_SECRET,
        products={
            "basic": "prod_basic",
            "premium": "prod_premium",
            "request": "prod_request",
            "test": "prod_test",
        },
        domain="https://shop.example",
        peer_site_url="https://peer.example",
        peer_shared_secret="peer-secret",
        discord_guild_id=1,
        discord_role_id=555,
        discord_notify_channel_id=777,
        voice_min_amount=500,
        voice_test_name="test",
    )


@pytest.fixture
def fake_stripe() -> FakeStripe:
    fake = FakeStripe()
    fake.prices["prod_basic"] = {"id": "price_basic", "type": "one_time"}
    fake.prices["prod_premium"] = {"id": "price_premium", "type": "recurring"}
    fake.prices["prod_request"] = {"id": "price_request", "type": "one_time"}
    return fake


@pytest.fixture
def peer_site() -> FakePeerSite:
    return FakePeerSite()


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot(members=[
        member(11, "alice", global_name="Alice W", nick="Ally"),
        member(12, "bob"),
        member(13, "carol", global_name="Bobby"),
    ])


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def record_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
    return _sleep
