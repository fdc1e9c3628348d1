"""
Support Desk SLA Engine - Main Application
===========================================

SLA enforcement and agent routing for multi-tenant support desks.

Modules:
- SLA Enforcement: Policies, per-ticket SLA instances, breach scanning and escalation
- Agent Routing: Weighted agent scoring with optional AI content signals

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and pure scoring logic
- Infrastructure: Database, LLM, webhooks, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from supportdesk.config import settings
from supportdesk.core import ApplicationException
from supportdesk.infrastructure.database import close_database, create_tables, init_database, ping_database
from supportdesk.routing.infrastructure import get_routing_config_manager
from supportdesk.routing.interfaces import routing_router
from supportdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    application_exception_handler,
    global_exception_handler,
    request_stats,
)
from supportdesk.shared.infrastructure.logging import get_logger, setup_logging
from supportdesk.sla.infrastructure import SLAScheduler, close_external_clients
from supportdesk.sla.interfaces import sla_router

logger = get_logger(__name__)

# Set by lifespan
sla_scheduler = None
routing_config_manager = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup: logging, database, routing config watcher, breach scheduler.
    Shutdown runs the same steps in reverse.
    """
    global sla_scheduler, routing_config_manager

    setup_logging(settings.log_level, settings.environment, service=settings.app_name)
    logger.info("Starting SLA engine", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "due_date_strategy": settings.due_date_strategy,
    })

    init_database()
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database unavailable at startup, continuing degraded", extra={"error": str(e)})

    routing_config_manager = get_routing_config_manager()
    routing_config_manager.start_watching()

    if settings.breach_scan_enabled:
        sla_scheduler = SLAScheduler()
        await sla_scheduler.start()
    else:
        logger.info("Breach scan disabled for this process")

    yield

    logger.info("Shutting down SLA engine")
    if sla_scheduler:
        await sla_scheduler.stop()
        sla_scheduler = None
    if routing_config_manager:
        routing_config_manager.stop_watching()
    await close_external_clients()
    await close_database()


app = FastAPI(
    title="Support Desk SLA Engine",
    description="""
    ## SLA Enforcement and Agent Routing

    ---

    ### SLA Enforcement

    - `POST /sla/policies` - Create a tenant SLA policy
    - `GET /sla/tickets/{id}/policy` - Find the policy that applies to a ticket
    - `POST /sla/tickets/{id}/instance` - Start SLA tracking for a ticket
    - `POST /sla/tickets/{id}/events` - Record first response, resolution, pause or resume
    - `POST /sla/breaches/check` - Run a breach scan now
    - `GET /sla/metrics` - Compliance metrics for a period

    Breach scans also run in the background every `BREACH_SCAN_INTERVAL_SECONDS`.

    ---

    ### Agent Routing

    - `POST /routing/suggest` - Best agent for a ticket
    - `POST /routing/suggestions` - Ranked agents with score breakdown
    - `POST /routing/recommend` - Assignee from triage output

    All tenant endpoints require the `X-Tenant-ID` header.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Routers ===
app.include_router(sla_router)
app.include_router(routing_router)


@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "ok",
                        "breach_scheduler": "running",
                        "routing_config": "loaded",
                        "llm_provider": "none"
                    },
                    "requests": {
                        "total": 1280,
                        "server_errors": 0,
                        "average_response_ms": 12.4,
                        "by_module": {"sla": 910, "routing": 350, "health": 20}
                    }
                }
            }
        }
    }
})
async def health_check():
    """Liveness plus dependency checks; degraded while the database is unreachable."""
    checks = {
        "database": await ping_database(),
        "breach_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
        "routing_config": "loaded" if routing_config_manager else "not_loaded",
        "llm_provider": settings.llm_provider
    }

    return {
        "status": "degraded" if checks["database"] == "unavailable" else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks,
        "requests": request_stats.snapshot()
    }


@app.get("/", tags=["Root"])
async def root():
    """Service index."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {"prefix": "/sla"},
            "routing": {"prefix": "/routing"}
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supportdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
