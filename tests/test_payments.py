"""Payment confirmation polling"""
import pytest
import stripe

from conftest import stripe_session
from relay.errors import PaymentIncomplete, ValidationError, VerificationFailed
from relay.services.payments import PaymentService, paid_session_from_stripe


@pytest.fixture
def service(fake_stripe, record_sleep):
    return PaymentService(fake_stripe, attempts=4, delay=2.0, sleep=record_sleep)


async def test_paid_on_first_attempt(service, fake_stripe, sleeps):
    fake_stripe.script("cs_test_1", stripe_session("cs_test_1"))

    paid = await service.confirm_paid("cs_test_1")

    assert paid["session_id"] == "cs_test_1"
    assert paid["tier"] == "basic"
    assert fake_stripe.retrieve_calls == ["cs_test_1"]
    assert sleeps == []


async def test_stops_at_first_paid_observation(service, fake_stripe, sleeps):
    fake_stripe.script(
        "cs_test_1",
        stripe_session("cs_test_1", status="unpaid"),
        stripe_session("cs_test_1", status="unpaid"),
        stripe_session("cs_test_1", status="paid"),
    )

    paid = await service.confirm_paid("cs_test_1")

    assert paid["amount"] == 1000
    assert len(fake_stripe.retrieve_calls) == 3
    assert sleeps == [2.0, 2.0]


async def test_never_paid_is_payment_incomplete(service, fake_stripe, sleeps):
    fake_stripe.script("cs_test_1", stripe_session("cs_test_1", status="unpaid"))

    with pytest.raises(PaymentIncomplete) as exc:
        await service.confirm_paid("cs_test_1")

    assert exc.value.status == 402
    assert len(fake_stripe.retrieve_calls) == 4
    assert sleeps == [2.0, 2.0, 2.0]


async def test_every_fetch_failing_is_verification_failed(service, fake_stripe):
    fake_stripe.script("cs_test_1", stripe.APIConnectionError("connection reset"))

    with pytest.raises(VerificationFailed) as exc:
        await service.confirm_paid("cs_test_1")

    assert exc.value.status == 500
    assert "connection reset" in exc.value.message
    assert len(fake_stripe.retrieve_calls) == 4


async def test_transient_error_then_paid(service, fake_stripe):
    fake_stripe.script(
        "cs_test_1",
        stripe.APIConnectionError("timeout"),
        stripe_session("cs_test_1"),
    )

    paid = await service.confirm_paid("cs_test_1")
    assert paid["session_id"] == "cs_test_1"
    assert len(fake_stripe.retrieve_calls) == 2


async def test_error_and_unpaid_mix_is_incomplete(service, fake_stripe):
    fake_stripe.script(
        "cs_test_1",
        stripe_session("cs_test_1", status="unpaid"),
        stripe.APIConnectionError("timeout"),
    )

    with pytest.raises(PaymentIncomplete):
        await service.confirm_paid("cs_test_1")


async def test_call_site_delay_override(service, fake_stripe, sleeps):
    fake_stripe.script("cs_test_1", stripe_session("cs_test_1", status="unpaid"))

    with pytest.raises(PaymentIncomplete):
        await service.confirm_paid("cs_test_1", delay=1.5)

    assert sleeps == [1.5, 1.5, 1.5]


@pytest.mark.parametrize("session_id", ["", "   ", None, "x" * 300])
async def test_bad_session_id_is_rejected_without_calls(service, fake_stripe, session_id):
    with pytest.raises(ValidationError):
        await service.confirm_paid(session_id)
    assert fake_stripe.retrieve_calls == []


def test_paid_session_normalization():
    paid = paid_session_from_stripe(stripe_session(
        "cs_live_9", tier="request", endpoint="discord", amount=2500, name="Sam", message="hi"
    ))
    assert paid == {
        "session_id": "cs_live_9",
        "tier": "request",
        "endpoint": "discord",
        "amount": 2500,
        "currency": "USD",
        "payment_method": "card",
        "customer_email": "buyer@example.com",
        "metadata": {"tier": "request", "endpoint": "discord", "name": "Sam", "message": "hi"},
    }


def test_paid_session_defaults_for_missing_metadata():
    paid = paid_session_from_stripe({"id": "cs_1", "payment_status": "paid"})
    assert paid["tier"] == "unknown"
    assert paid["endpoint"] == "web"
    assert paid["amount"] == 0
    assert paid["payment_method"] == "unknown"
