"""
FastAPI dependency providers

Services are built once in the application lifespan and stored on
app.state; routes receive them through these getters.
"""

from fastapi import Request

from .services.agent_registry import AgentRegistry
from .services.check_registry import CheckRegistry
from .services.scan_orchestrator_service import ScanOrchestrator
from .services.scan_scheduler_service import ScanScheduler


def get_check_registry(request: Request) -> CheckRegistry:
    return request.app.state.check_registry


def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def get_scheduler(request: Request) -> ScanScheduler:
    return request.app.state.scheduler
