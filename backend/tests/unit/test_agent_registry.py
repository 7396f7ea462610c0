"""
Unit tests for the agent registry.

Tests registration, heartbeat ordering, the liveness sweep and strict and
lenient agent selection.
"""

from datetime import timedelta

import pytest

from auditwatch.models.agent_models import AgentRegistration, Heartbeat
from auditwatch.models.enums import AgentStatus
from auditwatch.services.engine import AgentNotFoundError, AgentUnavailableError

from ..conftest import T0


@pytest.mark.unit
class TestRegistration:
    """Test AgentRegistry.register."""

    def test_register_marks_online(self, agent_registry, clock) -> None:
        agent = agent_registry.register(AgentRegistration(agent_id="agent-001", name="Edge 1", location="eu-west"))
        assert agent.status == AgentStatus.ONLINE
        assert agent.last_seen == clock.now
        assert agent.location == "eu-west"

    def test_name_defaults_to_id(self, agent_registry) -> None:
        agent = agent_registry.register(AgentRegistration(agent_id="agent-002"))
        assert agent.name == "agent-002"

    def test_reregister_brings_offline_agent_back(self, agent_registry, register_agent) -> None:
        register_agent("agent-001", AgentStatus.OFFLINE)
        agent = agent_registry.register(AgentRegistration(agent_id="agent-001"))
        assert agent.status == AgentStatus.ONLINE

    def test_returned_snapshot_is_a_copy(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        snapshot = agent_registry.get("agent-001")
        snapshot.status = AgentStatus.OFFLINE
        assert agent_registry.get("agent-001").status == AgentStatus.ONLINE


@pytest.mark.unit
class TestHeartbeat:
    """Test AgentRegistry.heartbeat."""

    def test_first_heartbeat_creates_agent(self, agent_registry) -> None:
        agent = agent_registry.heartbeat(Heartbeat(agent_id="agent-009", cpu_usage=12.5, memory_usage=40.0))
        assert agent.id == "agent-009"
        assert agent.cpu_usage == 12.5
        assert len(agent_registry) == 1

    def test_heartbeat_updates_status_and_last_seen(self, agent_registry, register_agent, clock) -> None:
        register_agent("agent-001")
        clock.advance(30)
        agent = agent_registry.heartbeat(Heartbeat(agent_id="agent-001", status=AgentStatus.SCANNING))
        assert agent.status == AgentStatus.SCANNING
        assert agent.last_seen == clock.now

    def test_stale_heartbeat_ignored(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        agent_registry.heartbeat(
            Heartbeat(agent_id="agent-001", status=AgentStatus.SCANNING, timestamp=T0 + timedelta(seconds=10))
        )
        agent = agent_registry.heartbeat(
            Heartbeat(agent_id="agent-001", status=AgentStatus.OFFLINE, timestamp=T0 + timedelta(seconds=5))
        )
        assert agent.status == AgentStatus.SCANNING

    def test_heartbeat_can_report_offline(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        agent = agent_registry.heartbeat(Heartbeat(agent_id="agent-001", status=AgentStatus.OFFLINE))
        assert agent.status == AgentStatus.OFFLINE


@pytest.mark.unit
class TestLivenessSweep:
    """Test AgentRegistry.sweep."""

    def test_silent_agent_swept_offline(self, agent_registry, register_agent, clock) -> None:
        register_agent("agent-001")
        register_agent("agent-002")
        clock.advance(45)
        agent_registry.heartbeat(Heartbeat(agent_id="agent-002"))
        clock.advance(20)

        swept = agent_registry.sweep()

        assert swept == ["agent-001"]
        assert agent_registry.get("agent-001").status == AgentStatus.OFFLINE
        assert agent_registry.get("agent-002").status == AgentStatus.ONLINE

    def test_agent_within_timeout_kept(self, agent_registry, register_agent, clock) -> None:
        register_agent("agent-001")
        clock.advance(60)
        assert agent_registry.sweep() == []

    def test_already_offline_not_reported_again(self, agent_registry, register_agent, clock) -> None:
        register_agent("agent-001")
        clock.advance(120)
        assert agent_registry.sweep() == ["agent-001"]
        assert agent_registry.sweep() == []

    def test_heartbeat_after_sweep_restores(self, agent_registry, register_agent, clock) -> None:
        register_agent("agent-001")
        clock.advance(120)
        agent_registry.sweep()
        agent = agent_registry.heartbeat(Heartbeat(agent_id="agent-001"))
        assert agent.status == AgentStatus.ONLINE


@pytest.mark.unit
class TestSelection:
    """Test strict select() and lenient partition()."""

    def test_select_returns_agents_in_request_order(self, agent_registry, register_agent) -> None:
        register_agent("agent-002")
        register_agent("agent-001")
        agents = agent_registry.select(["agent-002", "agent-001"])
        assert [a.id for a in agents] == ["agent-002", "agent-001"]

    def test_select_unknown_raises_not_found(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        with pytest.raises(AgentNotFoundError):
            agent_registry.select(["agent-001", "agent-404"])

    def test_select_offline_raises_unavailable(self, agent_registry, register_agent) -> None:
        register_agent("agent-004", AgentStatus.OFFLINE)
        with pytest.raises(AgentUnavailableError) as exc_info:
            agent_registry.select(["agent-004"])
        assert exc_info.value.agent_id == "agent-004"
        assert exc_info.value.error_code == "AGENT_UNAVAILABLE"

    def test_scanning_agent_is_selectable(self, agent_registry, register_agent) -> None:
        register_agent("agent-003", AgentStatus.SCANNING)
        assert [a.id for a in agent_registry.select(["agent-003"])] == ["agent-003"]

    def test_partition_splits_and_dedups(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        register_agent("agent-004", AgentStatus.OFFLINE)

        available, errors = agent_registry.partition(["agent-001", "agent-004", "agent-001", "agent-404"])

        assert [a.id for a in available] == ["agent-001"]
        assert [type(e) for e in errors] == [AgentUnavailableError, AgentNotFoundError]

    def test_counts(self, agent_registry, register_agent) -> None:
        register_agent("agent-001")
        register_agent("agent-002", AgentStatus.SCANNING)
        register_agent("agent-003", AgentStatus.OFFLINE)
        assert agent_registry.counts() == {"online": 1, "offline": 1, "scanning": 1, "total": 3}

    def test_list_sorted_by_id(self, agent_registry, register_agent) -> None:
        register_agent("agent-b")
        register_agent("agent-a")
        assert [a.id for a in agent_registry.list()] == ["agent-a", "agent-b"]
