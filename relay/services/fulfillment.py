import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from relay.clients.peer_site import PeerSiteClient
from relay.constants import CLAIM_POLL_DELAY_SECONDS
from relay.errors import AlreadyFulfilled, ConfigError, FulfillmentInProgress, UserNotFound
from relay.models.payment import IssuedKey, PaidSession, RoleGrant
from relay.services.notifications import NotificationService
from relay.services.payments import PaymentService
from relay.utils.keys import generate_access_key
from relay.utils.ledger import IdempotencyLedger

logger = logging.getLogger(__name__)


def member_names(member: Any) -> set[str]:
    """Username, global display name and guild nickname, casefolded"""
    names = (
        getattr(member, "name", None),
        getattr(member, "global_name", None),
        getattr(member, "nick", None),
    )
    return {n.casefold() for n in names if n}


def match_members(members: Iterable[Any], username: str) -> list[Any]:
    """Exact case-insensitive matches against any of the member's names"""
    wanted = username.strip().lstrip("@").casefold()
    return [m for m in members if wanted in member_names(m)]


class FulfillmentService:
    """Entitlement actions triggered by a confirmed payment"""

    def __init__(
        self,
        payments: PaymentService,
        peer_site: PeerSiteClient,
        notifications: NotificationService,
        ledger: IdempotencyLedger,
        bot: Optional[Any] = None,
        role_id: Optional[int] = None,
        claim_delay: float = CLAIM_POLL_DELAY_SECONDS,
    ):
        self.payments = payments
        self.peer_site = peer_site
        self.notifications = notifications
        self.ledger = ledger
        self.bot = bot
        self.role_id = role_id
        self.claim_delay = claim_delay

    async def claim_access_key(self, session_id: str) -> IssuedKey:
        """Issues an access key for a paid session and forwards it to the peer site"""
        paid = await self.payments.confirm_paid(session_id, delay=self.claim_delay)
        return await self._once("key", paid["session_id"], lambda: self._issue_key(paid))

    async def _issue_key(self, paid: PaidSession) -> IssuedKey:
        key = generate_access_key()
        stored = await self.peer_site.store_key(key, paid["tier"], paid["session_id"])
        if not stored:
            # The key is still handed out; the peer site has to be reconciled by hand
            logger.error(
                f"⚠️ Key issued for session {paid['session_id']} ({paid['tier']}) "
                f"but NOT stored on peer site"
            )
        await self.notifications.notify_key_issued(paid, stored)
        logger.info(f"🔑 Access key issued for session {paid['session_id']} ({paid['tier']})")
        return {
            "key": key,
            "tier": paid["tier"],
            "endpoint": paid["endpoint"],
            "stored": stored,
        }

    async def grant_role(self, session_id: str, username: str) -> RoleGrant:
        """
        Grants the configured Discord role to the member who paid

        Raises:
            ConfigError: bot token or role id not configured
            UserNotFound: no unique member with that name
            AlreadyFulfilled: the session already granted the role to another member
            ChatPlatformError: bot not in server, network error, assignment refused
        """
        if self.bot is None:
            raise ConfigError("DISCORD_BOT_TOKEN")
        if not self.role_id:
            raise ConfigError("DISCORD_ROLE_ID")

        paid = await self.payments.confirm_paid(session_id)
        grant = await self._once("role", paid["session_id"], lambda: self._grant(paid, username))
        if username.strip().lstrip("@").casefold() not in grant["aliases"]:
            raise AlreadyFulfilled(
                f"The role for this payment was already granted to {grant['member']}."
            )
        return grant

    async def _grant(self, paid: PaidSession, username: str) -> RoleGrant:
        candidates = await self.bot.search_members(username)
        matches = match_members(candidates, username)
        if len(matches) != 1:
            logger.info(f"🔍 Member '{username}' not found uniquely ({len(matches)} matches)")
            raise UserNotFound(username)

        member = matches[0]
        await self.bot.add_role(member, self.role_id)

        grant: RoleGrant = {
            "member_id": member.id,
            "member": str(member.name),
            "role_id": self.role_id,
            "aliases": sorted(member_names(member)),
        }
        logger.info(f"🎖️ Role {self.role_id} granted to {member.name} for session {paid['session_id']}")
        await self.notifications.notify_role_granted(paid, grant)
        return grant

    async def _once(self, action: str, session_id: str, run: Callable[[], Awaitable[Any]]) -> Any:
        """Runs an action at most once per session, replaying the stored result"""
        key = self.ledger.key(action, session_id)
        if not self.ledger.reserve(key):
            if self.ledger.is_pending(key):
                raise FulfillmentInProgress(
                    "This payment is already being processed. Please wait a moment."
                )
            logger.info(f"♻️ Replaying {action} result for session {session_id}")
            return self.ledger.result(key)

        try:
            result = await run()
        except BaseException:
            self.ledger.release(key)
            raise

        self.ledger.complete(key, result)
        return result
