from decimal import Decimal

import structlog

from payment_intake.errors import ConflictError, TransportError, ValidationError
from payment_intake.messaging import EventPublisher
from payment_intake.models import PaymentRequest, PaymentStatus, utcnow
from payment_intake.schemas import PaymentMessage, PaymentRequestCreate
from payment_intake.store import PaymentRequestStore

logger = structlog.get_logger(__name__)


# Mirror the payment_request columns: String(450) id, Numeric(18, 2) fees
MAX_ID_LENGTH = 450
FEES_SCALE = 2
MAX_FEES = Decimal(10) ** (18 - FEES_SCALE)


def validate_payment_request(candidate: PaymentRequestCreate) -> None:
    if not candidate.id or not candidate.id.strip():
        raise ValidationError("Invalid payment request: id is required.")
    if len(candidate.id) > MAX_ID_LENGTH:
        raise ValidationError(f"Invalid payment request: id is longer than {MAX_ID_LENGTH} characters.")
    fees = candidate.fees
    if fees is None or not fees.is_finite() or fees <= Decimal("0"):
        raise ValidationError("Invalid payment request: fees must be greater than zero.")
    if fees.as_tuple().exponent < -FEES_SCALE:
        raise ValidationError("Invalid payment request: fees cannot have more than two decimal places.")
    if fees >= MAX_FEES:
        raise ValidationError("Invalid payment request: fees are too large.")
    if candidate.container_number is None:
        raise ValidationError("Invalid payment request: containerNumber is required.")


async def initiate_payment(
    candidate: PaymentRequestCreate,
    store: PaymentRequestStore,
    publisher: EventPublisher,
) -> PaymentRequest:
    """Record a new Pending payment request, then notify the settlement worker.

    The request is committed before the notification is published. If the
    publish fails the request stays Pending and TransportError is raised.
    """
    try:
        validate_payment_request(candidate)
    except ValidationError as e:
        logger.error("payment_request_invalid", payment_id=candidate.id, reason=e.detail)
        raise

    logger.info("payment_request_received", payment_id=candidate.id, fees=str(candidate.fees))

    if await store.exists(candidate.id):
        logger.error("payment_request_duplicate", payment_id=candidate.id)
        raise ConflictError("Payment request with the same ID already exists.")

    payment_request = PaymentRequest(
        id=candidate.id,
        fees=candidate.fees,
        container_number=candidate.container_number,
        status=PaymentStatus.PENDING,
        date_created=utcnow(),
    )
    await store.add(payment_request)

    payment_message = PaymentMessage(
        id=payment_request.id,
        amount=payment_request.fees,
        container_number=payment_request.container_number,
        timestamp=utcnow(),
    )
    try:
        await publisher.publish_payment(payment_message)
    except TransportError as e:
        logger.error("payment_message_publish_failed", payment_id=payment_request.id, error=e.detail)
        raise

    return payment_request
