"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import COMPANY_HEADER, CSRF_HEADER, get_db
from helpdesk.core.rate_limit import limiter
from helpdesk.core.structured_logging import configure_logging
from helpdesk.db.session import engine

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info("sentry_initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Dev only. Other environments provision the schema ahead of time.
    if settings.ENV == "dev":
        from helpdesk.db.base import Base
        from helpdesk.db import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
    yield


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Helpdesk API",
    description="Multi-tenant helpdesk: forms, tickets, SLAs and a customer portal",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Staff sessions are cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", CSRF_HEADER, COMPANY_HEADER],
)

# ============================================================================
# Routers
# ============================================================================

from helpdesk.routers import (  # noqa: E402
    api_keys,
    api_v1,
    clients,
    forms,
    forms_public,
    integrations,
    internal,
    knowledge,
    portal,
    tickets,
    webhooks,
)

PUBLIC_ROUTERS = (forms_public, portal, webhooks, api_v1)
STAFF_ROUTERS = (forms, tickets, clients, knowledge, integrations, api_keys)

for module in (*PUBLIC_ROUTERS, *STAFF_ROUTERS, internal):
    app.include_router(module.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Liveness plus a database round trip."""
    db.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
