from decimal import Decimal
from datetime import datetime
from typing import Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from payment_intake.errors import DeserializationError
from payment_intake.models import PaymentStatus


class PaymentRequestCreate(BaseModel):
    # Presence and range checks happen in the intake handler so they map to 400, not 422
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, examples=["PR1"])
    fees: Optional[Decimal] = Field(default=None, examples=["100.00"])
    container_number: Optional[str] = Field(default=None, alias="containerNumber", examples=["CN1"])


class PaymentInitiated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    transaction_id: str = Field(alias="transactionId")


class PaymentStatusUpdated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: PaymentStatus
    transaction_id: str = Field(alias="transactionId")


class PaymentMessage(BaseModel):
    """Notification published once per accepted payment request."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    amount: Decimal
    container_number: str = Field(alias="containerNumber")
    timestamp: datetime

    @field_serializer("amount", when_used="json")
    def serialize_amount(self, amount: Decimal) -> float:
        return float(amount)

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def decode(cls, body: bytes) -> "PaymentMessage":
        try:
            return cls.model_validate_json(body)
        except pydantic.ValidationError as e:
            raise DeserializationError(f"Invalid payment message: {e.error_count()} error(s)") from e
