import logging
import re
from typing import Optional
from urllib.parse import urlencode

import stripe

from relay.clients.stripe_client import StripeClient
from relay.config import Config
from relay.constants import DEFAULT_ENDPOINT, ENDPOINT_PATTERN, MAX_FREE_TEXT_LENGTH, TIERS
from relay.errors import ConfigError, NoActivePriceError, NotFoundError, UpstreamError, ValidationError
from relay.models.payment import CheckoutMetadata

logger = logging.getLogger(__name__)

_ENDPOINT_RE = re.compile(ENDPOINT_PATTERN)

# Tiers whose checkout carries the buyer's name and message
FREE_TEXT_TIERS = {"request"}


def _free_text(value: Optional[str], field: str, required: bool) -> Optional[str]:
    value = (value or "").strip()
    if not value:
        if required:
            raise ValidationError(f"Missing {field}.")
        return None
    if len(value) > MAX_FREE_TEXT_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_FREE_TEXT_LENGTH} characters.")
    return value


def build_metadata(
    tier: str,
    endpoint: Optional[str] = None,
    referral: Optional[str] = None,
    name: Optional[str] = None,
    message: Optional[str] = None,
) -> CheckoutMetadata:
    """Validates request input and builds the session metadata bag"""
    endpoint = (endpoint or DEFAULT_ENDPOINT).strip()
    if not _ENDPOINT_RE.match(endpoint):
        raise ValidationError("Invalid endpoint.")

    metadata: CheckoutMetadata = {"tier": tier, "endpoint": endpoint}

    ref = _free_text(referral, "ref", required=False)
    if ref:
        metadata["ref"] = ref

    if tier in FREE_TEXT_TIERS:
        metadata["name"] = _free_text(name, "name", required=True)
        metadata["message"] = _free_text(message, "message", required=True)

    return metadata


class CheckoutService:
    """Opens Stripe checkout sessions for product tiers"""

    def __init__(self, config: Config, stripe_client: StripeClient):
        self.config = config
        self.stripe = stripe_client

    def success_url(self, metadata: CheckoutMetadata) -> str:
        query = urlencode({"tier": metadata["tier"], "endpoint": metadata["endpoint"]})
        # Stripe substitutes the placeholder, so it must stay unescaped
        return f"{self.config.domain}/success?{query}&session_id={{CHECKOUT_SESSION_ID}}"

    def cancel_url(self) -> str:
        return f"{self.config.domain}/"

    async def start_checkout(
        self,
        tier: str,
        endpoint: Optional[str] = None,
        referral: Optional[str] = None,
        name: Optional[str] = None,
        message: Optional[str] = None,
    ) -> str:
        """
        Creates a checkout session and returns the hosted payment page URL

        Raises:
            NotFoundError: unknown tier
            ConfigError: product id of the tier is not configured
            ValidationError: bad endpoint, referral or free text
            NoActivePriceError: product has no active price
            UpstreamError: Stripe call failed
        """
        if tier not in TIERS:
            raise NotFoundError(f"Unknown tier '{tier}'.")

        product_id = self.config.product_id(tier)
        if not product_id:
            setting = self.config.product_setting(tier)
            logger.error(f"❌ Missing {setting} in .env")
            raise ConfigError(setting)

        metadata = build_metadata(tier, endpoint, referral, name, message)
        test_mode = tier == "test"

        try:
            price = await self.stripe.first_active_price(product_id, test_mode=test_mode)
            if price is None:
                raise NoActivePriceError(product_id)

            mode = "subscription" if price.get("type") == "recurring" else "payment"
            session = await self.stripe.create_checkout_session(
                price_id=price["id"],
                mode=mode,
                metadata=metadata,
                success_url=self.success_url(metadata),
                cancel_url=self.cancel_url(),
                test_mode=test_mode,
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Checkout error ({tier}): {e.user_message or e}")
            raise UpstreamError(f"Failed to create checkout session: {e.user_message or e}") from e

        logger.info(f"🛒 Checkout session {session.get('id')} created ({tier}/{metadata['endpoint']}, {mode})")
        return session["url"]
