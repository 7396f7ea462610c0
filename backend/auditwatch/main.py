"""
AuditWatch - Compliance Audit Orchestration API
Main application entry point
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI

from .config import Settings, get_settings
from .middleware import register_exception_handlers
from .repositories import ScanRepository, ScheduleRepository
from .routes import router as api_router
from .services.agent_registry import AgentRegistry
from .services.alerting import AlertSink, build_alert_sink
from .services.check_registry import CheckRegistry
from .services.engine import AgentTransport, HttpAgentTransport, ProbeRegistry, ScanExecutor
from .services.result_aggregation_service import ResultAggregator
from .services.scan_orchestrator_service import ScanOrchestrator
from .services.scan_scheduler_service import ScanScheduler
from .version import get_version_info

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def create_app(
    settings: Optional[Settings] = None,
    probes: Optional[ProbeRegistry] = None,
    transport: Optional[AgentTransport] = None,
    alert_sink: Optional[AlertSink] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings; defaults to environment settings
        probes: Local probe registry; probes are supplied by deployments
        transport: Agent transport; defaults to HTTP
        alert_sink: Alert destination; defaults to webhook or log per settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan management."""
        logger.info(f"Starting {settings.app_name} {settings.app_version}...")

        check_registry = CheckRegistry.from_yaml(settings.catalog_path)
        agent_registry = AgentRegistry(heartbeat_timeout=settings.agent_heartbeat_timeout_seconds)

        probe_registry = probes if probes is not None else ProbeRegistry()
        if probe_registry.is_empty:
            logger.warning("No local probes registered; local checks will report check faults")

        agent_transport = transport or HttpAgentTransport(request_timeout=settings.agent_request_timeout_seconds)
        sink = alert_sink or build_alert_sink(settings.alert_webhook_url, settings.alert_webhook_secret)

        orchestrator = ScanOrchestrator(
            check_registry=check_registry,
            agent_registry=agent_registry,
            executor=ScanExecutor(probe_registry, agent_transport),
            aggregator=ResultAggregator(sink, default_threshold=settings.alert_threshold),
            scan_repository=ScanRepository(),
            max_concurrent_units=settings.max_concurrent_units,
        )
        scheduler = ScanScheduler(
            orchestrator,
            ScheduleRepository(),
            poll_interval=settings.scheduler_poll_interval_seconds,
        )

        # Store in app state for dependency injection
        app.state.settings = settings
        app.state.check_registry = check_registry
        app.state.agent_registry = agent_registry
        app.state.orchestrator = orchestrator
        app.state.scheduler = scheduler

        background = [
            asyncio.create_task(
                agent_registry.run_liveness_sweep(settings.liveness_sweep_interval_seconds),
                name="agent-liveness-sweep",
            )
        ]
        if settings.scheduler_enabled:
            background.append(asyncio.create_task(scheduler.run(), name="scan-scheduler"))
        else:
            logger.info("Scan scheduler disabled")

        logger.info(f"{settings.app_name} started successfully")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await scheduler.drain()
        await orchestrator.shutdown()
        for closeable in (agent_transport, sink):
            close = getattr(closeable, "close", None)
            if close is not None:
                await close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="AuditWatch - Compliance Audit Orchestrator",
        description="Distributed compliance scanning with scored, aggregated reports",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["System"])
    async def health():
        return {"status": "healthy", **get_version_info()}

    return app


def run() -> None:
    """Console entry point for the development server."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "auditwatch.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
