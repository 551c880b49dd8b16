from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payment_intake.errors import ConflictError, PersistenceError
from payment_intake.models import PaymentRequest

logger = structlog.get_logger(__name__)


class PaymentRequestStore:
    """Keyed access to payment requests on top of one database session.

    Every database failure leaves the session rolled back and surfaces as
    PersistenceError, except a primary key collision which is a ConflictError.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, payment_id: str) -> Optional[PaymentRequest]:
        try:
            result = await self.session.execute(
                select(PaymentRequest).where(PaymentRequest.id == payment_id)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load payment request {payment_id}") from e
        return result.scalar_one_or_none()

    async def exists(self, payment_id: str) -> bool:
        return await self.get(payment_id) is not None

    async def add(self, payment_request: PaymentRequest) -> PaymentRequest:
        self.session.add(payment_request)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError(
                f"Payment request with ID {payment_request.id} already exists."
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Could not save payment request {payment_request.id}") from e
        logger.info("payment_request_saved", payment_id=payment_request.id)
        return payment_request

    async def save(self, payment_request: PaymentRequest) -> PaymentRequest:
        self.session.add(payment_request)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Could not update payment request {payment_request.id}") from e
        return payment_request
