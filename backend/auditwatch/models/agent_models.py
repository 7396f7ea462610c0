"""
Agent Models

Records describing remote collection agents: the registration payload,
periodic heartbeats, and the snapshot the registry hands to readers.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import ApiModel, FrozenApiModel
from .enums import AgentStatus


class AgentRegistration(FrozenApiModel):
    """Payload an agent sends when it first joins the fleet."""

    agent_id: str = Field(min_length=1, max_length=128)
    name: str = ""
    location: str = ""
    capabilities: List[str] = Field(default_factory=list)
    os: str = ""
    version: str = ""
    endpoint: Optional[str] = Field(
        default=None,
        description="Base URL the engine uses to dispatch checks to this agent",
    )


class Heartbeat(FrozenApiModel):
    """Periodic liveness report from an agent."""

    agent_id: str = Field(min_length=1, max_length=128)
    status: AgentStatus = AgentStatus.ONLINE
    cpu_usage: float = Field(default=0.0, ge=0.0, le=100.0)
    memory_usage: float = Field(default=0.0, ge=0.0, le=100.0)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Agent-side send time; the receive time is used when omitted",
    )


class Agent(ApiModel):
    """
    Registry view of one agent.

    Instances returned by the registry are copies; changing them has no
    effect on registry state.
    """

    id: str
    name: str
    location: str = ""
    status: AgentStatus = AgentStatus.ONLINE
    last_seen: datetime
    capabilities: List[str] = Field(default_factory=list)
    os: str = ""
    version: str = ""
    endpoint: Optional[str] = None
    cpu_usage: float = 0.0
    memory_usage: float = 0.0

    @property
    def is_available(self) -> bool:
        """Agents that are online or already scanning may receive new work."""
        return self.status != AgentStatus.OFFLINE
