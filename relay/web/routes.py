"""HTTP routes: checkout redirects and the success-page JSON API"""
import logging
from typing import TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError as PydanticValidationError

from relay.constants import TIERS
from relay.errors import ValidationError
from relay.models.payment import PaidSession
from relay.models.requests import GrantRoleRequest, SessionRequest
from relay.services.voice import announcement_text, should_announce

logger = logging.getLogger(__name__)

Body = TypeVar("Body", bound=BaseModel)


async def parse_body(request: web.Request, model: type[Body]) -> Body:
    """Reads a JSON body into a request model, raising ValidationError (400)"""
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON.")

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid {field}: {first.get('msg')}")


async def handle_health(request: web.Request) -> web.Response:
    config = request.app["config"]
    bot = request.app["bot"]
    return web.json_response({
        "status": "ok",
        "discord": bool(bot is not None and bot.is_ready()),
        "voice": request.app["announcements"] is not None,
        "products": {tier: bool(config.product_id(tier)) for tier in TIERS},
    })


async def handle_checkout(request: web.Request) -> web.Response:
    """GET /{tier}[/{endpoint}] -> 303 to the Stripe hosted payment page"""
    query = request.query
    url = await request.app["checkout"].start_checkout(
        request.match_info["tier"],
        endpoint=request.match_info.get("endpoint") or query.get("endpoint"),
        referral=query.get("ref"),
        name=query.get("name"),
        message=query.get("message"),
    )
    raise web.HTTPSeeOther(url)


async def handle_options(request: web.Request) -> web.Response:
    return web.Response(status=204)


def announce_payment(app: web.Application, paid: PaidSession) -> None:
    """Posts the payment notification and queues a voice announcement, without waiting"""
    ledger = app["ledger"]
    if not ledger.reserve(ledger.key("announce", paid["session_id"])):
        logger.info(f"Session {paid['session_id']} already announced")
        return
    ledger.complete(ledger.key("announce", paid["session_id"]), True)

    app["tasks"].spawn(
        app["notifications"].notify_payment(paid, source="success page"),
        name=f"verify-notify-{paid['session_id']}",
    )

    config = app["config"]
    name = paid["metadata"].get("name")
    if not should_announce(paid["amount"], name, config.voice_min_amount, config.voice_test_name):
        logger.info(f"🔇 Voice announcement skipped for {paid['session_id']} (amount {paid['amount']})")
        return

    announcements = app["announcements"]
    if announcements is None:
        logger.info("🔇 Voice announcements are not configured")
        return
    announcements.submit(announcement_text(paid))


async def handle_verify_payment(request: web.Request) -> web.Response:
    """POST /api/verify-payment {session_id}"""
    body = await parse_body(request, SessionRequest)
    paid = await request.app["payments"].confirm_paid(body.session_id)

    announce_payment(request.app, paid)

    return web.json_response({
        "paid": True,
        "tier": paid["tier"],
        "endpoint": paid["endpoint"],
        "amount": paid["amount"],
        "currency": paid["currency"],
    })


async def handle_claim_key(request: web.Request) -> web.Response:
    """POST /api/claim-key {session_id}"""
    body = await parse_body(request, SessionRequest)
    issued = await request.app["fulfillment"].claim_access_key(body.session_id)
    return web.json_response({
        "key": issued["key"],
        "tier": issued["tier"],
        "endpoint": issued["endpoint"],
    })


async def handle_grant_role(request: web.Request) -> web.Response:
    """POST /api/grant-role {session_id, username}"""
    body = await parse_body(request, GrantRoleRequest)
    grant = await request.app["fulfillment"].grant_role(body.session_id, body.username)
    return web.json_response({
        "granted": True,
        "member": grant["member"],
        "member_id": str(grant["member_id"]),
        "role_id": str(grant["role_id"]),
    })


def setup_routes(app: web.Application) -> None:
    app.router.add_get("/health", handle_health)

    app.router.add_route("OPTIONS", "/api/{tail:.*}", handle_options)
    app.router.add_post("/api/verify-payment", handle_verify_payment)
    app.router.add_post("/api/claim-key", handle_claim_key)
    app.router.add_post("/api/grant-role", handle_grant_role)

    tier_pattern = "|".join(TIERS)
    app.router.add_get(f"/{{tier:{tier_pattern}}}", handle_checkout)
    app.router.add_get(f"/{{tier:{tier_pattern}}}/{{endpoint}}", handle_checkout)
