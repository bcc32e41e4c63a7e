"""Stripe client: prices, checkout sessions and webhook verification"""
import asyncio
import logging
from typing import Any, Optional

import stripe

from relay.constants import TEST_SESSION_PREFIX
from relay.models.payment import CheckoutMetadata

logger = logging.getLogger(__name__)


class StripeClient:
    """Thin async wrapper over the blocking Stripe SDK

    Stripe objects are not mappings, so every public method hands back
    plain dicts (``StripeObject.to_dict()``) and callers never touch SDK types.
    """

    def __init__(self, secret_key: str, webhook_secret: str, test_secret_key: str = ""):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.test_secret_key = test_secret_key

    def api_key_for(self, test_mode: bool = False) -> str:
        if test_mode and self.test_secret_key:
            return self.test_secret_key
        return self.secret_key

    def api_key_for_session(self, session_id: str) -> str:
        """Test-mode sessions are only visible with the test key"""
        return self.api_key_for(session_id.startswith(TEST_SESSION_PREFIX))

    async def first_active_price(self, product_id: str, test_mode: bool = False) -> Optional[dict]:
        """
        Returns the first active price of a product

        Args:
            product_id: Stripe product id
            test_mode: Use the test-mode key

        Returns:
            Price as a dict, or None if the product has no active price
        """
        prices = await asyncio.to_thread(self._list_prices, product_id, self.api_key_for(test_mode))
        data = prices.data
        return data[0].to_dict() if data else None

    async def create_checkout_session(
        self,
        price_id: str,
        mode: str,
        metadata: CheckoutMetadata,
        success_url: str,
        cancel_url: str,
        test_mode: bool = False,
    ) -> dict:
        """Creates a checkout session with a single line item"""
        session = await asyncio.to_thread(
            self._create_session,
            self.api_key_for(test_mode),
            mode=mode,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            metadata=dict(metadata),
            success_url=success_url,
            cancel_url=cancel_url,
        )
        return session.to_dict()

    async def retrieve_session(self, session_id: str) -> dict:
        session = await asyncio.to_thread(
            self._retrieve_session,
            session_id,
            self.api_key_for_session(session_id),
        )
        return session.to_dict()

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """
        Verifies a webhook signature and parses the event

        Raises:
            stripe.SignatureVerificationError: signature does not match
            ValueError: payload is not valid JSON
        """
        event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return event.to_dict()

    # Blocking SDK calls, run in a worker thread

    def _list_prices(self, product_id: str, api_key: str) -> stripe.ListObject:
        return stripe.Price.list(product=product_id, active=True, limit=1, api_key=api_key)

    def _create_session(self, api_key: str, **params: Any) -> stripe.checkout.Session:
        return stripe.checkout.Session.create(api_key=api_key, **params)

    def _retrieve_session(self, session_id: str, api_key: str) -> stripe.checkout.Session:
        return stripe.checkout.Session.retrieve(session_id, api_key=api_key)
