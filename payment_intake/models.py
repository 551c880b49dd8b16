from sqlalchemy import Column, String, Numeric, DateTime, Enum
from datetime import datetime, timezone
import enum

from payment_intake.database import Base


class PaymentStatus(enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentRequest(Base):
    __tablename__ = "payment_request"

    id = Column(String(450), primary_key=True, index=True)  # supplied by the caller
    fees = Column(Numeric(18, 2), nullable=False)
    container_number = Column(String, nullable=False)
    status = Column(
        Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    date_created = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentRequest id={self.id!r} status={self.status}>"
