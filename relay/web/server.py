"""aiohttp application: middlewares, services and routes"""
import asyncio
import logging
from typing import Any, Optional

from aiohttp import web

from relay.background.announcements import AnnouncementQueue
from relay.clients.peer_site import PeerSiteClient
from relay.clients.stripe_client import StripeClient
from relay.config import Config
from relay.errors import RelayError
from relay.services.checkout import CheckoutService
from relay.services.fulfillment import FulfillmentService
from relay.services.notifications import NotificationService
from relay.services.payments import PaymentService
from relay.utils.ledger import IdempotencyLedger
from relay.utils.tasks import BackgroundTasks
from relay.web import routes
from relay.webhook.stripe_webhook import handle_stripe_webhook

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
}


def _is_api(request: web.Request) -> bool:
    return request.path.startswith("/api/")


@web.middleware
async def cors_middleware(request: web.Request, handler):
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except RelayError as e:
        if e.status >= 500:
            logger.error(f"❌ {request.method} {request.path}: {e.message}")
        if _is_api(request):
            return web.json_response({"error": e.message}, status=e.status)
        return web.Response(text=e.message, status=e.status)
    except Exception as e:
        logger.exception(f"Unhandled error on {request.path}: {e}")
        if _is_api(request):
            return web.json_response({"error": "Internal server error"}, status=500)
        return web.Response(text="Internal server error", status=500)


def create_app(
    config: Config,
    stripe_client: Optional[StripeClient] = None,
    peer_site: Optional[PeerSiteClient] = None,
    bot: Optional[Any] = None,
    announcements: Optional[AnnouncementQueue] = None,
    tasks: Optional[BackgroundTasks] = None,
    sleep=asyncio.sleep,
) -> web.Application:
    """Builds the web application with its services"""
    stripe_client = stripe_client or StripeClient(
        config.stripe_secret_key,
        config.stripe_webhook_secret,
        config.stripe_test_secret_key,
    )
    peer_site = peer_site or PeerSiteClient(config.peer_site_url, config.peer_shared_secret)
    ledger = IdempotencyLedger(config.ledger_ttl)
    payments = PaymentService(stripe_client, config.poll_attempts, config.poll_delay, sleep=sleep)
    notifications = NotificationService(bot, config.discord_notify_channel_id, config.monitor_webhook_url)

    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app["config"] = config
    app["bot"] = bot
    app["stripe"] = stripe_client
    app["ledger"] = ledger
    app["payments"] = payments
    app["notifications"] = notifications
    app["checkout"] = CheckoutService(config, stripe_client)
    app["fulfillment"] = FulfillmentService(
        payments,
        peer_site,
        notifications,
        ledger,
        bot=bot,
        role_id=config.discord_role_id,
    )
    app["announcements"] = announcements
    app["tasks"] = tasks or BackgroundTasks()

    routes.setup_routes(app)
    app.router.add_post("/webhook", handle_stripe_webhook)

    return app
