"""Discord client: member search, roles, channel messages and voice channels"""
import asyncio
import logging
from typing import Optional

import aiohttp
import discord

from relay.config import Config
from relay.errors import ChatPlatformError, VoiceTargetNotFound

logger = logging.getLogger(__name__)

MEMBER_QUERY_LIMIT = 100


class RelayBot(discord.Client):
    """Process-wide Discord connection shared by all requests"""

    def __init__(self, config: Config):
        intents = discord.Intents.default()
        intents.members = True
        intents.voice_states = True
        super().__init__(intents=intents)
        self.guild_id = config.discord_guild_id

    async def on_ready(self):
        guild = self.get_guild(self.guild_id) if self.guild_id else None
        logger.info(f"🤖 Discord bot connected as {self.user} (guild: {guild.name if guild else 'NOT FOUND'})")

    def require_guild(self) -> discord.Guild:
        guild = self.get_guild(self.guild_id) if self.guild_id else None
        if guild is None:
            raise ChatPlatformError(
                ChatPlatformError.BOT_NOT_IN_SERVER,
                "The bot is not in the server (or not connected yet). Invite the bot and try again.",
            )
        return guild

    async def search_members(self, username: str) -> list[discord.Member]:
        """
        Candidate members for a claimed username

        Combines a gateway member query (username/nickname prefix) with the
        member cache, so display names are matched as well.
        """
        guild = self.require_guild()
        try:
            queried = await guild.query_members(query=username, limit=MEMBER_QUERY_LIMIT)
        except (asyncio.TimeoutError, aiohttp.ClientError, discord.DiscordException) as e:
            raise ChatPlatformError(
                ChatPlatformError.NETWORK,
                f"Could not search server members, Discord network error: {e}",
            ) from e

        candidates: dict[int, discord.Member] = {m.id: m for m in guild.members}
        candidates.update({m.id: m for m in queried})
        return list(candidates.values())

    async def add_role(self, member: discord.Member, role_id: int) -> None:
        try:
            await member.add_roles(discord.Object(id=role_id), reason="Paid checkout")
        except discord.Forbidden as e:
            raise ChatPlatformError(
                ChatPlatformError.ASSIGNMENT_FAILED,
                f"Role assignment failed: the bot lacks permission to assign role {role_id} ({e.text}).",
            ) from e
        except discord.HTTPException as e:
            raise ChatPlatformError(
                ChatPlatformError.ASSIGNMENT_FAILED,
                f"Role assignment failed: {e.text or e}",
            ) from e
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            raise ChatPlatformError(
                ChatPlatformError.NETWORK,
                f"Role assignment failed, Discord network error: {e}",
            ) from e

    async def send_embed(self, channel_id: int, embed: discord.Embed) -> None:
        channel = self.get_channel(channel_id)
        if channel is None:
            channel = await self.fetch_channel(channel_id)
        await channel.send(embed=embed)

    def voice_channel(self, channel_id: Optional[int]) -> discord.VoiceChannel:
        """Resolves the announcement channel, raising before any connection attempt"""
        guild = self.get_guild(self.guild_id) if self.guild_id else None
        if guild is None:
            raise VoiceTargetNotFound(f"Guild {self.guild_id} not found")
        channel = guild.get_channel(channel_id) if channel_id else None
        if not isinstance(channel, discord.VoiceChannel):
            raise VoiceTargetNotFound(f"Voice channel {channel_id} not found in guild {guild.id}")
        return channel
