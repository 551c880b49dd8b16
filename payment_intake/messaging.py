from typing import Optional

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection
import structlog

from payment_intake.config import Settings
from payment_intake.errors import TransportError
from payment_intake.schemas import PaymentMessage

logger = structlog.get_logger(__name__)


async def declare_payment_topic(channel: AbstractChannel, settings: Settings):
    return await channel.declare_exchange(
        settings.payment_topic, aio_pika.ExchangeType.TOPIC, durable=True
    )


class EventPublisher:
    """Publishes payment notifications to the payment topic exchange."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection: Optional[AbstractRobustConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.exchange: Optional[AbstractExchange] = None

    async def connect(self) -> None:
        try:
            self.connection = await aio_pika.connect_robust(self.settings.rabbitmq_url)
            self.channel = await self.connection.channel()
            self.exchange = await declare_payment_topic(self.channel, self.settings)
        except Exception as e:
            raise TransportError(f"Could not connect to RabbitMQ: {e}") from e
        logger.info("publisher_connected", exchange=self.settings.payment_topic)

    async def close(self) -> None:
        if self.connection is not None and not self.connection.is_closed:
            await self.connection.close()
        self.connection = self.channel = self.exchange = None

    async def publish_payment(self, payment_message: PaymentMessage) -> None:
        if self.exchange is None:
            raise TransportError("RabbitMQ channel not available. Cannot publish payment message.")

        message = aio_pika.Message(
            payment_message.encode(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=payment_message.id,
        )
        try:
            await self.exchange.publish(message, routing_key=self.settings.payment_routing_key)
        except Exception as e:
            raise TransportError(f"Error publishing payment message {payment_message.id}: {e}") from e

        logger.info(
            "payment_message_published",
            payment_id=payment_message.id,
            routing_key=self.settings.payment_routing_key,
        )
