import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.fee_types.router import router as fee_types_router
from app.api.v1.fees.router import router as fees_router
from app.api.v1.ledger.router import router as ledger_router
from app.api.v1.payments.router import router as payments_router
from app.api.v1.payroll.router import router as payroll_router
from app.api.v1.reminders.router import router as reminders_router
from app.core.config import settings


def create_app() -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="School Fee Ledger")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(fee_types_router)
    app.include_router(fees_router)
    app.include_router(payments_router)
    app.include_router(ledger_router)
    app.include_router(payroll_router)
    app.include_router(reminders_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
