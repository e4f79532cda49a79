from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from billing_ledger.api.v1.billing.router import router as billing_router
from billing_ledger.api.v1.billing_configs.router import router as billing_configs_router
from billing_ledger.api.v1.billing_rules.router import router as billing_rules_router
from billing_ledger.api.v1.payments.router import router as payments_router
from billing_ledger.api.v1.reports.router import router as reports_router
from billing_ledger.core.config import settings
from billing_ledger.core.logging_config import configure_logging


def create_app() -> FastAPI:
    configure_logging(settings.log_level, settings.log_json)
    app = FastAPI(title="Billing Ledger")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(billing_configs_router)
    app.include_router(billing_rules_router)
    app.include_router(billing_router)
    app.include_router(payments_router)
    app.include_router(reports_router)

    return app


app = create_app()
