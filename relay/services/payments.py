import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import stripe

from relay.clients.stripe_client import StripeClient
from relay.constants import (
    DEFAULT_ENDPOINT,
    MAX_SESSION_ID_LENGTH,
    PAID_STATUS,
    POLL_ATTEMPTS,
    POLL_DELAY_SECONDS,
)
from relay.errors import PaymentIncomplete, ValidationError, VerificationFailed
from relay.models.payment import PaidSession

logger = logging.getLogger(__name__)


def paid_session_from_stripe(session: Any) -> PaidSession:
    """Normalizes a Stripe checkout session into a PaidSession"""
    metadata = dict(session.get("metadata") or {})
    methods = session.get("payment_method_types") or []
    details = session.get("customer_details") or {}

    return {
        "session_id": str(session.get("id") or ""),
        "tier": str(metadata.get("tier") or "unknown"),
        "endpoint": str(metadata.get("endpoint") or DEFAULT_ENDPOINT),
        "amount": int(session.get("amount_total") or 0),
        "currency": str(session.get("currency") or "").upper(),
        "payment_method": str(methods[0]) if methods else "unknown",
        "customer_email": details.get("email") or session.get("customer_email"),
        "metadata": {str(k): str(v) for k, v in metadata.items()},
    }


def validate_session_id(session_id: Optional[str]) -> str:
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValidationError("Missing session_id.")
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise ValidationError("Invalid session_id.")
    return session_id


class PaymentService:
    """Confirms that a checkout session has been paid"""

    def __init__(
        self,
        stripe_client: StripeClient,
        attempts: int = POLL_ATTEMPTS,
        delay: float = POLL_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.stripe = stripe_client
        self.attempts = attempts
        self.delay = delay
        self._sleep = sleep

    async def confirm_paid(
        self,
        session_id: str,
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> PaidSession:
        """
        Polls Stripe until the session is paid

        Fixed-interval retry: absorbs the short delay between the success
        redirect and the payment status settling. Read-only, safe to repeat.

        Args:
            session_id: Checkout session reference
            attempts: Max number of fetches
            delay: Seconds between fetches

        Returns:
            PaidSession on the first "paid" observation

        Raises:
            ValidationError: session_id missing or malformed
            PaymentIncomplete: still unpaid after every attempt (client may retry)
            VerificationFailed: every fetch failed
        """
        session_id = validate_session_id(session_id)
        attempts = attempts or self.attempts
        delay = self.delay if delay is None else delay

        fetched = False
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                session = await self.stripe.retrieve_session(session_id)
            except stripe.StripeError as e:
                last_error = e
                logger.warning(
                    f"Could not fetch session {session_id} (attempt {attempt}/{attempts}): "
                    f"{e.user_message or e}"
                )
            else:
                fetched = True
                status = session.get("payment_status")
                if status == PAID_STATUS:
                    logger.info(f"✅ Session {session_id} paid (attempt {attempt}/{attempts})")
                    return paid_session_from_stripe(session)
                logger.info(f"⏳ Session {session_id} not paid yet: {status} (attempt {attempt}/{attempts})")

            if attempt < attempts:
                await self._sleep(delay)

        if not fetched:
            detail = getattr(last_error, "user_message", None) or str(last_error)
            raise VerificationFailed(f"Payment verification failed: {detail}")

        raise PaymentIncomplete("Payment not completed yet. Please wait a few seconds and try again.")
