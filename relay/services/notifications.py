import logging
from typing import Optional

import aiohttp
import discord

from relay.constants import COLOR_KEY, COLOR_PAYMENT, COLOR_ROLE, HTTP_TIMEOUT_SECONDS, ZERO_DECIMAL_CURRENCIES
from relay.models.payment import PaidSession, RoleGrant

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str) -> str:
    """1999, 'usd' -> '19.99 USD'; 500, 'jpy' -> '500 JPY'"""
    currency = currency.upper()
    if currency in ZERO_DECIMAL_CURRENCIES:
        return f"{amount} {currency}"
    return f"{amount / 100:.2f} {currency}"


def payment_embed(paid: PaidSession, source: str) -> discord.Embed:
    embed = discord.Embed(title="💰 Payment completed", color=COLOR_PAYMENT)
    embed.add_field(name="Tier", value=paid["tier"], inline=True)
    embed.add_field(name="Endpoint", value=paid["endpoint"], inline=True)
    embed.add_field(name="Amount", value=format_amount(paid["amount"], paid["currency"]), inline=True)
    embed.add_field(name="Payment method", value=paid["payment_method"], inline=True)
    metadata = paid["metadata"]
    if metadata.get("ref"):
        embed.add_field(name="Referral", value=metadata["ref"], inline=True)
    if metadata.get("name"):
        embed.add_field(name="Name", value=metadata["name"][:1024], inline=False)
    if metadata.get("message"):
        embed.add_field(name="Message", value=metadata["message"][:1024], inline=False)
    embed.set_footer(text=f"{source} · {paid['session_id']}")
    return embed


def key_embed(paid: PaidSession, stored: bool) -> discord.Embed:
    embed = discord.Embed(title="🔑 Access key issued", color=COLOR_KEY)
    embed.add_field(name="Tier", value=paid["tier"], inline=True)
    embed.add_field(name="Endpoint", value=paid["endpoint"], inline=True)
    embed.add_field(name="Stored on peer site", value="yes" if stored else "⚠️ NO", inline=True)
    embed.set_footer(text=paid["session_id"])
    return embed


def role_embed(paid: PaidSession, grant: RoleGrant) -> discord.Embed:
    embed = discord.Embed(title="🎖️ Role granted", color=COLOR_ROLE)
    embed.add_field(name="Member", value=f"{grant['member']} (<@{grant['member_id']}>)", inline=False)
    embed.add_field(name="Role", value=f"<@&{grant['role_id']}>", inline=True)
    embed.add_field(name="Tier", value=paid["tier"], inline=True)
    embed.set_footer(text=paid["session_id"])
    return embed


class NotificationService:
    """Posts operational notifications to Discord

    Observability only: every method logs failures and never raises.
    """

    def __init__(
        self,
        bot: Optional[discord.Client],
        channel_id: Optional[int] = None,
        webhook_url: str = "",
    ):
        self.bot = bot
        self.channel_id = channel_id
        self.webhook_url = webhook_url

    async def notify_payment(self, paid: PaidSession, source: str = "webhook") -> bool:
        """Payment summary: tier, amount, payment method"""
        return await self._deliver(payment_embed(paid, source), f"payment {paid['session_id']}")

    async def notify_key_issued(self, paid: PaidSession, stored: bool) -> bool:
        return await self._deliver(key_embed(paid, stored), f"key for {paid['session_id']}")

    async def notify_role_granted(self, paid: PaidSession, grant: RoleGrant) -> bool:
        return await self._deliver(role_embed(paid, grant), f"role for {paid['session_id']}")

    async def _deliver(self, embed: discord.Embed, what: str) -> bool:
        delivered = False

        if self.bot is not None and self.channel_id:
            try:
                await self.bot.send_embed(self.channel_id, embed)
                delivered = True
            except Exception as e:
                logger.error(f"Failed to post {what} notification to channel {self.channel_id}: {e}")

        if self.webhook_url:
            try:
                await self._send_webhook(embed)
                delivered = True
            except Exception as e:
                logger.error(f"Failed to post {what} notification to monitoring webhook: {e}")

        if delivered:
            logger.info(f"📨 Notification sent: {what}")
        return delivered

    async def _send_webhook(self, embed: discord.Embed) -> None:
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            webhook = discord.Webhook.from_url(self.webhook_url, session=session)
            await webhook.send(embed=embed, username="Checkout Relay")
