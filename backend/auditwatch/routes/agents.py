"""
Agent API Routes

Endpoints:
    POST /agents           - Register an agent
    POST /agents/heartbeat - Report agent liveness and utilisation
    GET  /agents           - List agents
    GET  /agents/{agent_id} - Get one agent
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_agent_registry
from ..models.agent_models import Agent, AgentRegistration, Heartbeat
from ..services.agent_registry import AgentRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["Agents"])


@router.post("", response_model=Agent, status_code=status.HTTP_201_CREATED)
async def register_agent(
    registration: AgentRegistration,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> Agent:
    return registry.register(registration)


@router.post("/heartbeat", response_model=Agent)
async def agent_heartbeat(
    heartbeat: Heartbeat,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> Agent:
    """Apply a heartbeat; unknown agents are created on their first heartbeat."""
    return registry.heartbeat(heartbeat)


@router.get("", response_model=List[Agent])
async def list_agents(registry: AgentRegistry = Depends(get_agent_registry)) -> List[Agent]:
    return registry.list()


@router.get("/{agent_id}", response_model=Agent)
async def get_agent(agent_id: str, registry: AgentRegistry = Depends(get_agent_registry)) -> Agent:
    return registry.get(agent_id)
