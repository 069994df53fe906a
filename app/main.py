import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import analytics, budget, expense, income, party, personal, reconciliation, transaction
from app.common.error_handlers import register_error_handlers
from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.logger_config import logger
from app.services.budget_scheduler import run_periodic_sweep


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"✅ {settings.APP_NAME} started ({settings.APP_ENV})")

    sweep_task = None
    if settings.SCHEDULER_ENABLED:
        sweep_task = asyncio.create_task(
            run_periodic_sweep(SessionLocal, settings.SCHEDULER_INTERVAL_SECONDS)
        )
    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register API routers
app.include_router(party.customer_router, prefix="/api/v1/customers", tags=["customers"])
app.include_router(party.vendor_router, prefix="/api/v1/vendors", tags=["vendors"])
app.include_router(transaction.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(budget.router, prefix="/api/v1/budgets", tags=["budgets"])
app.include_router(expense.router, prefix="/api/v1/expenses", tags=["expenses"])
app.include_router(income.router, prefix="/api/v1/incomes", tags=["incomes"])
app.include_router(personal.router, prefix="/api/v1/personal/contacts", tags=["personal"])
app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["analytics"])
app.include_router(
    reconciliation.router, prefix="/api/v1/reconciliation", tags=["reconciliation"])


@app.get("/")
def read_root():
    return {"message": f"Welcome to the {settings.APP_NAME} APIs!"}
