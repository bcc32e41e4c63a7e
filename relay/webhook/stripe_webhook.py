"""Webhook endpoint for Stripe events"""
import logging
from aiohttp import web
import stripe

from relay.constants import CHECKOUT_COMPLETED_EVENT
from relay.errors import SignatureInvalid
from relay.services.payments import paid_session_from_stripe

logger = logging.getLogger(__name__)


async def handle_stripe_webhook(request: web.Request) -> web.Response:
    """
    Stripe webhook: checkout.session.completed -> payment notification

    The body is read as raw bytes and verified before anything else. Once the
    signature passes, the event is always acknowledged with 200; the
    notification runs in the background and its failures are only logged.
    Entitlements (keys, roles) are issued from the success page, not here.
    """
    payload = await request.read()
    signature = request.headers.get("Stripe-Signature", "")

    stripe_client = request.app["stripe"]
    try:
        event = stripe_client.construct_event(payload, signature)
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe webhook signature verification failed")
        raise SignatureInvalid("Invalid signature") from e
    except ValueError as e:
        logger.warning("Stripe webhook with malformed payload")
        raise SignatureInvalid("Invalid payload") from e

    event_type = event["type"]
    logger.info(f"Stripe event received: {event_type} (id={event.get('id')})")

    if event_type != CHECKOUT_COMPLETED_EVENT:
        return web.json_response({"received": True})

    paid = paid_session_from_stripe(event["data"]["object"])
    logger.info(
        f"💰 Checkout completed via webhook: {paid['session_id']} "
        f"({paid['tier']}/{paid['endpoint']}, {paid['amount']} {paid['currency']})"
    )

    notifications = request.app["notifications"]
    request.app["tasks"].spawn(
        notifications.notify_payment(paid, source="webhook"),
        name=f"webhook-notify-{paid['session_id']}",
    )

    return web.json_response({"received": True})
