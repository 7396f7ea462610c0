"""
Pytest configuration and fixtures for AuditWatch backend tests.

Nothing here touches the network: local probes are plain coroutines and the
agent transport is an in-process fake.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from auditwatch.config import DEFAULT_CATALOG_PATH
from auditwatch.models.agent_models import AgentRegistration, Heartbeat
from auditwatch.models.enums import AgentStatus
from auditwatch.repositories import ScanRepository
from auditwatch.services.agent_registry import AgentRegistry
from auditwatch.services.alerting import AlertEvent
from auditwatch.services.check_registry import CheckRegistry
from auditwatch.services.engine import (
    AgentEnvelope,
    CheckSpec,
    ExecutionError,
    ExecutionErrorKind,
    ProbeRegistry,
    RemoteExecutor,
    ScanExecutor,
)
from auditwatch.services.result_aggregation_service import ResultAggregator
from auditwatch.services.scan_orchestrator_service import ScanOrchestrator

T0 = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

# Five controls across two frameworks, small enough to reason about unit by unit
DEMO_CATALOG: Dict[str, Any] = {
    "frameworks": [
        {
            "id": "alpha",
            "name": "Alpha",
            "control_count": 3,
            "categories": ["Access"],
            "severity": "high",
            "controls": [
                {"control_id": "A-1", "title": "MFA", "category": "Access", "severity": "critical",
                 "check_type": "mfa", "remediation": "Enable MFA."},
                {"control_id": "A-2", "title": "Password policy", "category": "Access", "severity": "medium",
                 "check_type": "password_policy", "remediation": "Enforce a password policy."},
                {"control_id": "A-3", "title": "Session timeout", "category": "Access", "severity": "low",
                 "check_type": "session_timeout", "remediation": "Expire idle sessions."},
            ],
        },
        {
            "id": "beta",
            "name": "Beta",
            "control_count": 2,
            "categories": ["Crypto"],
            "severity": "high",
            "controls": [
                {"control_id": "B-1", "title": "TLS", "category": "Crypto", "severity": "high",
                 "check_type": "tls", "remediation": "Use TLS 1.2+."},
                {"control_id": "B-2", "title": "Disk encryption", "category": "Crypto", "severity": "high",
                 "check_type": "disk_encryption", "remediation": "Encrypt disks."},
            ],
        },
    ],
    "vulnerability_checks": [
        {"control_id": "VULN-TLS", "title": "Weak TLS", "category": "Vulnerability", "severity": "high",
         "check_type": "vuln_tls", "remediation": "Disable weak ciphers."},
    ],
    "penetration_checks": [
        {"control_id": "PENTEST-AUTH", "title": "Auth bypass", "category": "Penetration", "severity": "critical",
         "check_type": "pentest_auth", "remediation": "Enforce authentication."},
    ],
}


# --- Fakes ---


class ManualClock:
    """Settable UTC clock for registries and schedulers."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def result_probe(results: Optional[Dict[str, str]] = None, default: str = "pass"):
    """
    Probe answering each check from a map of check_id -> result.

    Vulnerability checks are reported as not detected.
    """
    results = results or {}

    async def probe(target: str, check: CheckSpec) -> Dict[str, Any]:
        if check.check_class.value == "vulnerability":
            return {"detected": False}
        return {"result": results.get(check.check_id, default), "evidence": f"probed {target}"}

    return probe


def make_probes(results: Optional[Dict[str, str]] = None, default: str = "pass") -> ProbeRegistry:
    return ProbeRegistry(default=result_probe(results, default))


class GatedProbe:
    """
    Probe that settles immediately for some checks and blocks on a gate for
    the rest, so a test can cancel a scan with a known number of units done.
    """

    def __init__(self, immediate: List[str]):
        self.immediate = set(immediate)
        self.gate = asyncio.Event()

    async def __call__(self, target: str, check: CheckSpec) -> Dict[str, Any]:
        if check.check_id not in self.immediate:
            await self.gate.wait()
        return {"result": "pass"}


class FakeTransport:
    """
    In-process agent transport.

    Behaviour per agent id:
        "pass" / "fail" / "warning": every check returns that result
        "unreachable": ExecutionError(TRANSPORT_FAILURE)
        "error": agent reports status=error
        callable: called with (agent, check, target, custom_script)
    """

    def __init__(self, behaviour: Optional[Dict[str, Any]] = None, default: Any = "pass"):
        self.behaviour = behaviour or {}
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def dispatch(
        self,
        agent: RemoteExecutor,
        check: CheckSpec,
        target: str,
        custom_script: Optional[str] = None,
    ) -> AgentEnvelope:
        self.calls.append(
            {"agent_id": agent.agent_id, "check_id": check.check_id, "target": target, "script": custom_script}
        )
        mode = self.behaviour.get(agent.agent_id, self.default)
        if callable(mode):
            return await mode(agent, check, target, custom_script)
        if mode == "unreachable":
            raise ExecutionError(ExecutionErrorKind.TRANSPORT_FAILURE, f"Agent {agent.agent_id} unreachable")
        if mode == "error":
            return AgentEnvelope(status="error", data={"error": "collector crashed"}, execution_time=0.1)
        if check.check_class.value == "script":
            return AgentEnvelope(status="success", data={"stdout": f"ran on {agent.agent_id}"}, execution_time=0.2)
        if check.check_class.value == "vulnerability":
            return AgentEnvelope(status="success", data={"detected": False}, execution_time=0.1)
        return AgentEnvelope(status="success", data={"result": mode}, execution_time=0.5)


class RecordingAlertSink:
    def __init__(self):
        self.events: List[AlertEvent] = []

    async def emit(self, event: AlertEvent) -> None:
        self.events.append(event)


# --- Fixtures ---


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture(scope="session")
def catalog_registry() -> CheckRegistry:
    """The shipped framework catalog."""
    return CheckRegistry.from_yaml(DEFAULT_CATALOG_PATH)


@pytest.fixture
def demo_registry() -> CheckRegistry:
    return CheckRegistry.from_dict(DEMO_CATALOG)


@pytest.fixture
def agent_registry(clock) -> AgentRegistry:
    return AgentRegistry(heartbeat_timeout=60.0, clock=clock)


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def register_agent(agent_registry) -> Callable[..., None]:
    """Register an agent and optionally move it to another status."""

    def _register(agent_id: str, status: AgentStatus = AgentStatus.ONLINE) -> None:
        agent_registry.register(
            AgentRegistration(agent_id=agent_id, name=agent_id.upper(), endpoint=f"http://{agent_id}:9000")
        )
        if status != AgentStatus.ONLINE:
            agent_registry.heartbeat(Heartbeat(agent_id=agent_id, status=status))

    return _register


@pytest.fixture
def make_orchestrator(catalog_registry, agent_registry, alert_sink) -> Callable[..., ScanOrchestrator]:
    """Build an orchestrator with the given probes, transport and catalog."""

    def _make(
        probes: Optional[ProbeRegistry] = None,
        transport: Optional[FakeTransport] = None,
        registry: Optional[CheckRegistry] = None,
        max_concurrent_units: int = 32,
    ) -> ScanOrchestrator:
        return ScanOrchestrator(
            check_registry=registry if registry is not None else catalog_registry,
            agent_registry=agent_registry,
            executor=ScanExecutor(
                probes if probes is not None else make_probes(),
                transport if transport is not None else FakeTransport(),
            ),
            aggregator=ResultAggregator(alert_sink, default_threshold=70),
            scan_repository=ScanRepository(),
            max_concurrent_units=max_concurrent_units,
        )

    return _make
