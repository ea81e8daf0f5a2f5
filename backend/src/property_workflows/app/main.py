"""FastAPI application entry point for the Property Workflows API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from property_workflows.app.config import get_settings
from property_workflows.app.routes.deps import get_policy, transition_rejected_handler
from property_workflows.infra.database import init_db
from property_workflows.services.workflow_engine import TransitionRejected

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: validate the notice policy and initialize the database."""
    policy = get_policy()
    logger.info(
        "Notice policy loaded: %s (bid cap %s)",
        ", ".join(f"{r.value}={d}d" for r, d in policy.notice_periods.items()),
        "on" if policy.enforce_bid_cap else "off",
    )
    await init_db()
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Property Workflows API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware — allow all origins in debug mode for LAN/IP access
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TransitionRejected, transition_rejected_handler)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from property_workflows.app.routes.tenancies import router as tenancies_router
from property_workflows.app.routes.maintenance import router as maintenance_router
from property_workflows.app.routes.commissions import router as commissions_router
from property_workflows.app.routes.reports import router as reports_router

app.include_router(tenancies_router)
app.include_router(maintenance_router)
app.include_router(commissions_router)
app.include_router(reports_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "property-workflows"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "property_workflows.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
