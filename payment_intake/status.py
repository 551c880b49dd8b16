"""
Payment status transitions.

A payment request starts Pending and is settled exactly once, to Paid or
Failed. Two writers settle requests: the manual update-status endpoint and
the settlement worker. Neither talks to a real payment gateway;
confirm_with_gateway always reports success, so both writers always settle
to Paid. There is no lock between the two writers, the last commit wins.
"""
from decimal import Decimal

import structlog

from payment_intake.errors import ConflictError, NotFoundError
from payment_intake.models import PaymentRequest, PaymentStatus
from payment_intake.store import PaymentRequestStore

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: set(),
    PaymentStatus.FAILED: set(),
}


def transition(payment_request: PaymentRequest, target: PaymentStatus) -> PaymentRequest:
    """Move a request to ``target``.

    Re-applying the status a request already has is accepted and changes
    nothing, so a replayed notification leaves a Paid request Paid.
    """
    current = payment_request.status
    if current == target:
        logger.info("payment_status_unchanged", payment_id=payment_request.id, status=current.value)
        return payment_request
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            f"Payment request {payment_request.id} cannot move from {current.value} to {target.value}."
        )
    payment_request.status = target
    return payment_request


async def confirm_with_gateway(payment_request: PaymentRequest) -> bool:
    # No gateway integration exists; every payment is treated as confirmed.
    return True


def settled_status(succeeded: bool) -> PaymentStatus:
    return PaymentStatus.PAID if succeeded else PaymentStatus.FAILED


async def clear_container_fees(store: PaymentRequestStore, container_number: str) -> None:
    """Zero the fees of the request filed under the container number, if there is one."""
    container = await store.get(container_number)
    if container is None:
        return
    container.fees = Decimal("0")
    await store.save(container)
    logger.info("container_fees_cleared", payment_id=container.id)


async def update_payment_status(store: PaymentRequestStore, payment_id: str) -> PaymentRequest:
    """Settle a request synchronously, standing in for a gateway callback."""
    payment_request = await store.get(payment_id)
    if payment_request is None:
        raise NotFoundError("Payment request not found.")

    succeeded = await confirm_with_gateway(payment_request)
    transition(payment_request, settled_status(succeeded))
    await store.save(payment_request)
    logger.info(
        "payment_status_updated",
        payment_id=payment_id,
        status=payment_request.status.value,
        source="manual",
    )

    if succeeded:
        await clear_container_fees(store, payment_request.container_number)

    return payment_request
