"""
Settlement worker.

Consumes payment notifications from the payment subscription queue, one
message in flight at a time, and settles the matching payment request.

settle_payment never raises: it reports what happened as a SettlementOutcome
and the consumer decides whether to acknowledge the message. By default every
outcome is acknowledged, so a store failure drops the notification and leaves
the request Pending. Set REQUEUE_ON_STORE_FAILURE to have those messages
requeued instead.

Run standalone with:
    python -m payment_intake.settlement
"""
import asyncio
import enum

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from payment_intake.config import Settings
from payment_intake.database import init_db, make_engine, make_session_factory
from payment_intake.errors import ConflictError, DeserializationError, PersistenceError, TransportError
from payment_intake.logging_config import setup_logging
from payment_intake.messaging import declare_payment_topic
from payment_intake.schemas import PaymentMessage
from payment_intake.status import confirm_with_gateway, settled_status, transition
from payment_intake.store import PaymentRequestStore

logger = structlog.get_logger(__name__)


class SettlementOutcome(enum.Enum):
    SETTLED = "settled"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    STORE_FAILED = "store_failed"


async def settle_payment(
    body: bytes,
    session_factory: async_sessionmaker,
    delay_seconds: float = 0,
) -> SettlementOutcome:
    try:
        payment_message = PaymentMessage.decode(body)
    except DeserializationError as e:
        logger.error("payment_message_malformed", error=e.detail)
        return SettlementOutcome.MALFORMED

    logger.info(
        "payment_processing",
        payment_id=payment_message.id,
        container_number=payment_message.container_number,
        amount=str(payment_message.amount),
    )

    # Stands in for the round trip to a payment gateway
    await asyncio.sleep(delay_seconds)

    try:
        async with session_factory() as session:
            store = PaymentRequestStore(session)
            payment_request = await store.get(payment_message.id)
            if payment_request is None:
                logger.warning("payment_request_not_found", payment_id=payment_message.id)
                return SettlementOutcome.NOT_FOUND

            logger.info(
                "payment_request_current_status",
                payment_id=payment_request.id,
                status=payment_request.status.value,
            )
            succeeded = await confirm_with_gateway(payment_request)
            transition(payment_request, settled_status(succeeded))
            await store.save(payment_request)
    except ConflictError as e:
        logger.error("payment_transition_rejected", payment_id=payment_message.id, error=e.detail)
        return SettlementOutcome.REJECTED
    except PersistenceError as e:
        logger.error("payment_settlement_store_failed", payment_id=payment_message.id, error=e.detail)
        return SettlementOutcome.STORE_FAILED

    logger.info(
        "payment_status_updated",
        payment_id=payment_request.id,
        status=payment_request.status.value,
        source="settlement",
    )
    return SettlementOutcome.SETTLED


class SettlementWorker:
    def __init__(self, settings: Settings, session_factory: async_sessionmaker):
        self.settings = settings
        self.session_factory = session_factory
        self.connection = None

    async def on_message(self, message: AbstractIncomingMessage) -> SettlementOutcome:
        logger.info("payment_message_received", message_id=message.message_id)
        try:
            outcome = await settle_payment(
                message.body,
                self.session_factory,
                self.settings.settlement_delay_seconds,
            )
        except Exception:
            # Nothing raised while handling a message may stop the consumer
            logger.exception("payment_message_handler_crashed", message_id=message.message_id)
            outcome = SettlementOutcome.STORE_FAILED

        if outcome is SettlementOutcome.STORE_FAILED and self.settings.requeue_on_store_failure:
            await message.nack(requeue=True)
            logger.info("payment_message_requeued", message_id=message.message_id)
        else:
            await message.ack()
            logger.info("payment_message_acked", message_id=message.message_id, outcome=outcome.value)
        return outcome

    async def start(self) -> None:
        """Bind the subscription queue and start consuming. Returns once consuming."""
        try:
            self.connection = await aio_pika.connect_robust(self.settings.rabbitmq_url)
            channel = await self.connection.channel()
            await channel.set_qos(prefetch_count=self.settings.settlement_prefetch)

            exchange = await declare_payment_topic(channel, self.settings)
            queue = await channel.declare_queue(self.settings.payment_subscription, durable=True)
            await queue.bind(exchange, self.settings.payment_routing_key)

            await queue.consume(self.on_message, no_ack=False)
        except Exception as e:
            raise TransportError(f"Could not start settlement consumer: {e}") from e

        logger.info(
            "settlement_worker_listening",
            queue=self.settings.payment_subscription,
            prefetch=self.settings.settlement_prefetch,
        )

    async def stop(self) -> None:
        if self.connection is not None and not self.connection.is_closed:
            await self.connection.close()
        self.connection = None

    async def run_forever(self) -> None:
        try:
            await self.start()
            await asyncio.Future()
        finally:
            await self.stop()


async def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings)

    engine = make_engine(settings)
    if settings.create_schema_on_startup:
        await init_db(engine)
    worker = SettlementWorker(settings, make_session_factory(engine))
    try:
        await worker.run_forever()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("settlement_worker_stopped")
