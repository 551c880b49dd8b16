from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from payment_intake.config import Settings
from payment_intake.database import get_session, init_db, make_engine, make_session_factory
from payment_intake.errors import PaymentError
from payment_intake.intake import initiate_payment
from payment_intake.logging_config import setup_logging
from payment_intake.messaging import EventPublisher
from payment_intake.schemas import PaymentInitiated, PaymentRequestCreate, PaymentStatusUpdated
from payment_intake.settlement import SettlementWorker
from payment_intake.status import update_payment_status
from payment_intake.store import PaymentRequestStore

logger = structlog.get_logger(__name__)


def get_store(session: AsyncSession = Depends(get_session)) -> PaymentRequestStore:
    return PaymentRequestStore(session)


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.publisher


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Resources are released in reverse order, including when startup fails halfway
        async with AsyncExitStack() as stack:
            engine = make_engine(settings)
            stack.push_async_callback(engine.dispose)
            if settings.create_schema_on_startup:
                await init_db(engine)
            app.state.session_factory = make_session_factory(engine)

            app.state.publisher = EventPublisher(settings)
            stack.push_async_callback(app.state.publisher.close)
            await app.state.publisher.connect()

            if settings.run_settlement_worker:
                worker = SettlementWorker(settings, app.state.session_factory)
                stack.push_async_callback(worker.stop)
                await worker.start()

            yield

    app = FastAPI(title="Payment Intake Service", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.error("payment_request_malformed", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(status_code=400, content={"detail": "Invalid payment request."})

    @app.post("/payment/initiate", response_model=PaymentInitiated)
    async def initiate(
        candidate: PaymentRequestCreate,
        store: PaymentRequestStore = Depends(get_store),
        publisher: EventPublisher = Depends(get_publisher),
    ):
        payment_request = await initiate_payment(candidate, store, publisher)
        return PaymentInitiated(message="Payment initiation successful.", transaction_id=payment_request.id)

    @app.post("/payment/update-status/{payment_id}", response_model=PaymentStatusUpdated)
    async def update_status(payment_id: str, store: PaymentRequestStore = Depends(get_store)):
        payment_request = await update_payment_status(store, payment_id)
        return PaymentStatusUpdated(status=payment_request.status, transaction_id=payment_request.id)

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


def run() -> None:
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
