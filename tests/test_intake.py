import pytest
from decimal import Decimal

from payment_intake.errors import ConflictError, TransportError, ValidationError
from payment_intake.intake import initiate_payment
from payment_intake.models import PaymentStatus
from payment_intake.schemas import PaymentRequestCreate
from payment_intake.store import PaymentRequestStore

from conftest import count, fetch, seed


async def run_intake(session_factory, publisher, candidate):
    async with session_factory() as session:
        return await initiate_payment(candidate, PaymentRequestStore(session), publisher)


@pytest.mark.asyncio
async def test_initiate_payment_stores_pending_request_and_publishes(session_factory, publisher):
    """
    Test case 1: A valid request is stored Pending and a matching notification is published.
    """
    candidate = PaymentRequestCreate(id="PR1", fees=Decimal("100.00"), container_number="CN1")

    payment_request = await run_intake(session_factory, publisher, candidate)

    assert payment_request.id == "PR1"
    assert payment_request.status == PaymentStatus.PENDING

    stored = await fetch(session_factory, "PR1")
    assert stored.status == PaymentStatus.PENDING
    assert stored.fees == Decimal("100.00")
    assert stored.container_number == "CN1"
    assert stored.date_created is not None

    publisher.publish_payment.assert_awaited_once()
    (payment_message,), _ = publisher.publish_payment.call_args
    assert payment_message.id == "PR1"
    assert payment_message.amount == Decimal("100.00")
    assert payment_message.container_number == "CN1"


@pytest.mark.asyncio
async def test_initiate_payment_commits_before_publishing(session_factory, publisher):
    """
    Test case 2: The request is already findable in the store when the notification goes out.
    """
    seen_at_publish = []

    async def record_store_state(payment_message):
        seen_at_publish.append(await fetch(session_factory, payment_message.id))

    publisher.publish_payment.side_effect = record_store_state

    await run_intake(
        session_factory,
        publisher,
        PaymentRequestCreate(id="PR2", fees=Decimal("5.50"), container_number="CN2"),
    )

    assert len(seen_at_publish) == 1
    assert seen_at_publish[0] is not None
    assert seen_at_publish[0].status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_initiate_payment_rejects_duplicate_id(session_factory, publisher):
    """
    Test case 3: A second request with an existing id is rejected and the store is unchanged.
    """
    await seed(session_factory, "PR1", fees="100.00", container_number="CN1")

    with pytest.raises(ConflictError):
        await run_intake(
            session_factory,
            publisher,
            PaymentRequestCreate(id="PR1", fees=Decimal("999.99"), container_number="OTHER"),
        )

    stored = await fetch(session_factory, "PR1")
    assert stored.fees == Decimal("100.00")
    assert stored.container_number == "CN1"
    assert await count(session_factory) == 1
    publisher.publish_payment.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("candidate", [
    PaymentRequestCreate(id=None, fees=Decimal("10"), container_number="CN1"),
    PaymentRequestCreate(id="", fees=Decimal("10"), container_number="CN1"),
    PaymentRequestCreate(id="   ", fees=Decimal("10"), container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=Decimal("0"), container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=Decimal("-5.00"), container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=None, container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=Decimal("10"), container_number=None),
    PaymentRequestCreate(id="PR1", fees=Decimal("0.004"), container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=Decimal("10.001"), container_number="CN1"),
    PaymentRequestCreate(id="PR1", fees=Decimal("1E+16"), container_number="CN1"),
    PaymentRequestCreate(id="P" * 451, fees=Decimal("10"), container_number="CN1"),
])
async def test_initiate_payment_rejects_invalid_request(session_factory, publisher, candidate):
    """
    Test case 4: Missing or oversized ids and non-positive, sub-cent or oversized fees are rejected;
    nothing is stored or published.
    """
    with pytest.raises(ValidationError):
        await run_intake(session_factory, publisher, candidate)

    assert await count(session_factory) == 0
    publisher.publish_payment.assert_not_awaited()


@pytest.mark.asyncio
async def test_initiate_payment_publish_failure_leaves_request_pending(session_factory, publisher):
    """
    Test case 5: A failed publish surfaces as TransportError and the committed request stays Pending.
    """
    publisher.publish_payment.side_effect = TransportError("RabbitMQ channel not available.")

    with pytest.raises(TransportError):
        await run_intake(
            session_factory,
            publisher,
            PaymentRequestCreate(id="PR3", fees=Decimal("20.00"), container_number="CN3"),
        )

    stored = await fetch(session_factory, "PR3")
    assert stored is not None
    assert stored.status == PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("payment_id, fees", [
    ("PR1", "0.01"),
    ("PR1", "12345.67"),
    ("P" * 450, "12.5"),
])
async def test_initiate_payment_stores_fees_exactly_as_published(session_factory, publisher, payment_id, fees):
    """
    Test case 6: Boundary fees and ids are accepted and the stored fees match the published amount.
    """
    await run_intake(
        session_factory,
        publisher,
        PaymentRequestCreate(id=payment_id, fees=Decimal(fees), container_number="CN1"),
    )

    stored = await fetch(session_factory, payment_id)
    (payment_message,), _ = publisher.publish_payment.call_args
    assert stored.fees > 0
    assert stored.fees == payment_message.amount == Decimal(fees)
