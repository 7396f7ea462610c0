"""
Agent Registry Service
Tracks remote collection agents and their liveness

The registry is the only writer of agent status. Status changes come from
three places:

    register()   -> online
    heartbeat()  -> whatever the agent reports (online/scanning/offline)
    sweep()      -> offline, when no heartbeat arrived within the timeout

Agents are never deleted. Readers always receive copies, so a snapshot taken
at dispatch time is not affected by later heartbeats.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models.agent_models import Agent, AgentRegistration, Heartbeat
from ..models.enums import AgentStatus
from .engine.exceptions import AgentNotFoundError, AgentUnavailableError, AuditWatchError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AgentRegistry:
    """
    In-memory registry of remote agents.

    All mutating methods are synchronous, so they are atomic with respect to
    other coroutines on the event loop.

    Args:
        heartbeat_timeout: Seconds without a heartbeat before an agent is
            swept offline
        clock: Source of the current time (UTC); injectable for tests
    """

    def __init__(self, heartbeat_timeout: float = 60.0, clock: Optional[Clock] = None):
        self.heartbeat_timeout = timedelta(seconds=heartbeat_timeout)
        self._clock = clock or _utc_now
        self._agents: Dict[str, Agent] = {}
        # Agent-side timestamp of the last accepted heartbeat, for ordering
        self._last_reported: Dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(self, registration: AgentRegistration) -> Agent:
        """
        Register an agent or refresh its descriptors.

        Registration always marks the agent online and counts as a heartbeat.
        """
        now = self._clock()
        existing = self._agents.get(registration.agent_id)
        agent = Agent(
            id=registration.agent_id,
            name=registration.name or registration.agent_id,
            location=registration.location,
            status=AgentStatus.ONLINE,
            last_seen=now,
            capabilities=list(registration.capabilities),
            os=registration.os,
            version=registration.version,
            endpoint=registration.endpoint,
            cpu_usage=existing.cpu_usage if existing else 0.0,
            memory_usage=existing.memory_usage if existing else 0.0,
        )
        self._agents[agent.id] = agent

        if existing is None:
            logger.info(f"Registered agent {agent.id} ({agent.name}) at {agent.location or 'unknown location'}")
        else:
            logger.info(f"Re-registered agent {agent.id}; previous status {existing.status.value}")
        return agent.model_copy(deep=True)

    def heartbeat(self, heartbeat: Heartbeat) -> Agent:
        """
        Apply a heartbeat.

        Creates the agent on first heartbeat. Heartbeats whose agent-side
        timestamp is older than the last accepted one are ignored.

        Returns:
            Snapshot of the agent after the heartbeat
        """
        now = self._clock()
        reported_at = _as_utc(heartbeat.timestamp) if heartbeat.timestamp else now

        last = self._last_reported.get(heartbeat.agent_id)
        if last is not None and reported_at < last:
            logger.debug(f"Ignoring stale heartbeat from {heartbeat.agent_id} ({reported_at} < {last})")
            return self._agents[heartbeat.agent_id].model_copy(deep=True)

        agent = self._agents.get(heartbeat.agent_id)
        if agent is None:
            agent = Agent(id=heartbeat.agent_id, name=heartbeat.agent_id, last_seen=now)
            logger.info(f"Agent {heartbeat.agent_id} created from first heartbeat")
        elif agent.status != heartbeat.status:
            logger.info(f"Agent {agent.id} status {agent.status.value} -> {heartbeat.status.value}")

        updated = agent.model_copy(
            update={
                "status": heartbeat.status,
                "last_seen": now,
                "cpu_usage": heartbeat.cpu_usage,
                "memory_usage": heartbeat.memory_usage,
            }
        )
        self._agents[updated.id] = updated
        self._last_reported[updated.id] = reported_at
        return updated.model_copy(deep=True)

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Mark agents without a recent heartbeat offline.

        Args:
            now: Reference time; defaults to the registry clock

        Returns:
            Ids of agents that transitioned to offline in this sweep
        """
        now = _as_utc(now) if now else self._clock()
        cutoff = now - self.heartbeat_timeout
        swept = []
        for agent_id, agent in self._agents.items():
            if agent.status != AgentStatus.OFFLINE and agent.last_seen < cutoff:
                self._agents[agent_id] = agent.model_copy(update={"status": AgentStatus.OFFLINE})
                swept.append(agent_id)

        if swept:
            logger.warning(f"Liveness sweep marked {len(swept)} agent(s) offline: {', '.join(swept)}")
        return swept

    async def run_liveness_sweep(self, interval: float) -> None:
        """Background loop; runs until cancelled."""
        logger.info(f"Agent liveness sweep started (interval={interval}s, timeout={self.heartbeat_timeout})")
        try:
            while True:
                await asyncio.sleep(interval)
                self.sweep()
        except asyncio.CancelledError:
            logger.info("Agent liveness sweep stopped")
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> List[Agent]:
        """Snapshots of all agents, ordered by id."""
        return [self._agents[agent_id].model_copy(deep=True) for agent_id in sorted(self._agents)]

    def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent.model_copy(deep=True)

    def select(self, agent_ids: Iterable[str]) -> List[Agent]:
        """
        Resolve agent ids strictly.

        Raises:
            AgentNotFoundError: For the first unknown id
            AgentUnavailableError: For the first offline agent
        """
        available, errors = self.partition(agent_ids)
        if errors:
            raise errors[0]
        return available

    def partition(self, agent_ids: Iterable[str]) -> Tuple[List[Agent], List[AuditWatchError]]:
        """
        Resolve agent ids leniently.

        Duplicate ids collapse; request order is preserved.

        Returns:
            (available agent snapshots, per-agent resolution errors)
        """
        available: List[Agent] = []
        errors: List[AuditWatchError] = []
        seen = set()
        for agent_id in agent_ids:
            if agent_id in seen:
                continue
            seen.add(agent_id)

            agent = self._agents.get(agent_id)
            if agent is None:
                errors.append(AgentNotFoundError(agent_id))
            elif not agent.is_available:
                errors.append(AgentUnavailableError(agent_id, agent.status.value))
            else:
                available.append(agent.model_copy(deep=True))
        return available, errors

    def counts(self) -> Dict[str, int]:
        """Number of agents per status, plus the total."""
        counts = {status.value: 0 for status in AgentStatus}
        for agent in self._agents.values():
            counts[agent.status.value] += 1
        counts["total"] = len(self._agents)
        return counts

    def __len__(self) -> int:
        return len(self._agents)
