"""
SST Resolve - Main Application
===============================

Ticket lifecycle and SLA escalation service for student support.

Modules:
- Tickets: state machine, escalation engine, breach and reminder sweeps
- SLA: policies, escalation chains, TAT math, analytics
- Notifications: outbox delivery to Slack

Each module is split into domain, application (services, repository
ports), infrastructure (SQLAlchemy, watchdog, APScheduler, Slack) and
interfaces (FastAPI routers). This file wires them together.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from sst_resolve.config import settings
from sst_resolve.core import ApplicationException
from sst_resolve.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from sst_resolve.shared.infrastructure.cache import TTLCache

# SLA
from sst_resolve.sla.application import SLAPolicyResolver
from sst_resolve.sla.infrastructure import (
    SLAConfigManager,
    SLAScheduler,
    SQLAlchemyEscalationRuleRepository,
)

# Tickets
from sst_resolve.tickets.application import (
    EscalationService,
    SLABreachSweepService,
    SLAReminderService,
)
from sst_resolve.tickets.infrastructure import (
    SQLAlchemyOutboxRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)

# Notifications
from sst_resolve.notifications.application import OutboxProcessor
from sst_resolve.notifications.infrastructure import SlackClient

# Routers
from sst_resolve.sla.interfaces import sla_router
from sst_resolve.tickets.interfaces import tickets_router

# HTTP plumbing
from sst_resolve.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
    request_validation_exception_handler,
)
from sst_resolve.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_sweep_job(app: FastAPI):
    """Background breach sweep, one transaction per run."""

    async def sla_sweep_job() -> None:
        try:
            async with get_session_context() as session:
                users = SQLAlchemyUserRepository(session)
                tickets = SQLAlchemyTicketRepository(session)
                resolver = SLAPolicyResolver(
                    SQLAlchemyEscalationRuleRepository(session),
                    users,
                    app.state.sla_config_manager,
                    cache=app.state.policy_cache,
                )
                escalation_service = EscalationService(
                    tickets,
                    SQLAlchemyOutboxRepository(session),
                    users,
                    resolver,
                    reason_max_length=settings.escalation_reason_max_length,
                )
                sweep = SLABreachSweepService(tickets, escalation_service, app.state.sla_config_manager)
                await sweep.sweep()
        except ApplicationException as e:
            logger.error("Breach sweep failed", extra={"error": e.message, "details": e.details})

    return sla_sweep_job


def build_reminder_job(app: FastAPI):
    """Background reminder sweep, one transaction per run."""

    async def reminder_job() -> None:
        try:
            async with get_session_context() as session:
                reminders = SLAReminderService(
                    SQLAlchemyTicketRepository(session),
                    SQLAlchemyOutboxRepository(session),
                    app.state.sla_config_manager,
                )
                await reminders.remind()
        except ApplicationException as e:
            logger.error("Reminder sweep failed", extra={"error": e.message, "details": e.details})

    return reminder_job


def build_outbox_job(app: FastAPI):
    """Background outbox delivery, one transaction per batch."""

    async def outbox_job() -> None:
        try:
            async with get_session_context() as session:
                processor = OutboxProcessor(
                    SQLAlchemyOutboxRepository(session),
                    app.state.slack_client,
                    batch_size=settings.outbox_batch_size,
                    max_attempts=settings.outbox_max_attempts,
                )
                await processor.process_batch()
        except ApplicationException as e:
            logger.error("Outbox processing failed", extra={"error": e.message, "details": e.details})

    return outbox_job


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Wire the process up before serving and tear it down afterwards.

    Startup order matters: the policy cache subscribes to config reloads,
    and the background jobs read the config manager, cache and Slack client
    from ``app.state``. Shutdown stops the jobs before closing what they use.
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SST Resolve", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })
    app.state.settings = settings

    logger.info("Initializing database")
    init_database()

    try:
        await create_tables()
    except (SQLAlchemyError, OSError) as e:
        logger.warning(
            "Database unreachable at startup; requests will fail until it returns",
            extra={"error": str(e)}
        )

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    policy_cache = TTLCache(ttl_seconds=settings.policy_cache_ttl_seconds)
    config_manager.on_reload(lambda _config: policy_cache.invalidate())

    slack_client = SlackClient(
        settings.slack_webhook_url,
        channel=settings.slack_channel,
        timeout_seconds=settings.slack_timeout_seconds,
        ticket_base_url=settings.ticket_base_url,
        channels_for_level=lambda level: config_manager.get_config().get_channels_for_level(level),
    )

    app.state.sla_config_manager = config_manager
    app.state.policy_cache = policy_cache
    app.state.slack_client = slack_client

    scheduler = SLAScheduler()
    if settings.sla_evaluation_interval > 0:
        scheduler.add_interval_job(
            "sla_breach_sweep", build_sweep_job(app), settings.sla_evaluation_interval, "SLA breach sweep"
        )
    if settings.sla_reminder_interval > 0:
        scheduler.add_interval_job(
            "sla_reminders", build_reminder_job(app), settings.sla_reminder_interval, "SLA reminders"
        )
    if settings.outbox_poll_interval > 0:
        scheduler.add_interval_job(
            "outbox_delivery", build_outbox_job(app), settings.outbox_poll_interval, "Outbox delivery"
        )
    if scheduler.job_ids:
        await scheduler.start()
    app.state.scheduler = scheduler

    logger.info("SST Resolve started successfully")

    yield

    logger.info("Shutting down SST Resolve")

    await scheduler.stop()
    config_manager.stop_watching()
    await slack_client.close()
    await close_database()

    logger.info("SST Resolve shutdown complete")


app = FastAPI(
    title="SST Resolve API",
    description="""
    ## Student Support Ticketing: Lifecycle and SLA Escalation

    ### Tickets
    - `POST /tickets` - File a ticket (deadlines stamped from the SLA policy)
    - `GET /tickets/{id}` / `GET /tickets/{id}/sla` - Ticket and its SLA clocks
    - `POST /tickets/{id}/acknowledge|comments|escalate|reassign|resolve|reopen|rate|tat`

    ### SLA
    - `GET /sla/policy` - Effective budgets and escalation chain for a domain/scope
    - `GET /sla/metrics` - Ticket analytics
    - `POST /sla/sweep` - Run the breach sweep now

    The caller is identified by the `X-User-Id` header set by the auth gateway.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: correlation ID is set before request logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)

app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(tickets_router)
app.include_router(sla_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Liveness plus whether the SLA config, scheduler and Slack are wired."""
    scheduler = getattr(request.app.state, "scheduler", None)
    checks = {
        "sla_config": "loaded" if getattr(request.app.state, "sla_config_manager", None) else "not_loaded",
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "slack": "configured" if settings.slack_webhook_url else "not_configured",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "SST Resolve",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {"prefix": "/tickets"},
            "sla": {"prefix": "/sla"},
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sst_resolve.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
