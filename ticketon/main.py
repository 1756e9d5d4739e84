import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import ticketon.models  # noqa: F401
from ticketon.core.config import settings
from ticketon.core.db import SessionLocal
from ticketon.core.logging_config import setup_logging
from ticketon.services.notifications import EmailNotifier
from ticketon.services.sweeper import ExpirySweeper
from ticketon.services.transactions import TransactionService

# Routers
from ticketon.routers.transactions import router as transactions_router
from ticketon.routers.organizer_transactions import router as organizer_transactions_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    service = TransactionService(SessionLocal, notifier=EmailNotifier(SessionLocal))
    app.state.transaction_service = service

    stop = asyncio.Event()
    sweeper_task = None
    if settings.SWEEPER_ENABLED:
        sweeper_task = asyncio.create_task(ExpirySweeper(service).run_forever(stop))
    else:
        logger.info("Transaction sweeper disabled (SWEEPER_ENABLED=false)")

    try:
        yield
    finally:
        stop.set()
        if sweeper_task is not None:
            await sweeper_task
        await service.wait_for_notifications()


app = FastAPI(title="Ticketon", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Transactions
app.include_router(transactions_router)
app.include_router(organizer_transactions_router)
