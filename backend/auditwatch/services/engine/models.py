"""
Engine Module Shared Models and Types

This module defines the core data structures used across the scan execution
engine: resolved checks, executor variants, per-unit outcomes and the depth
profiles that bound scan latency.

These models are used by:
- The check registry (producing CheckSpec tuples)
- The scan executor (consuming executors and checks, producing UnitOutcome)
- The scan orchestrator (deadlines and dispatch)
- The result aggregator (folding outcomes)

Design Principles:
- Immutable (frozen dataclasses) so outcomes can be shared between tasks
- Framework-agnostic (no FastAPI or pydantic dependency)
- Executors are a tagged variant dispatched on ExecutionMode, not a class
  hierarchy with overridden behaviour
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .exceptions import ExecutionError, ExecutionErrorKind

LOCAL_EXECUTOR_KEY = "local"


class ExecutionMode(str, Enum):
    """
    Where an execution unit runs.

    Attributes:
        LOCAL: In-process, through the probe registry
        AGENT: On a remote agent, through the agent transport
    """

    LOCAL = "local"
    AGENT = "agent"


class CheckClass(str, Enum):
    """
    How a check's outcome is folded into the report.

    Attributes:
        CONTROL: Framework control, becomes one Finding
        VULNERABILITY: Becomes one Vulnerability when detected
        PENETRATION: Scored like a control
        SCRIPT: Custom agent script, kept opaque and never scored
    """

    CONTROL = "control"
    VULNERABILITY = "vulnerability"
    PENETRATION = "penetration"
    SCRIPT = "script"


@dataclass(frozen=True)
class CheckSpec:
    """
    One resolved check.

    Attributes:
        check_id: Unique id within a resolution, "<framework>:<control>"
        framework_id: Owning framework ("vulnerability"/"penetration"/"script"
            for non-framework checks)
        control_id: Control identifier from the catalog
        title: Short human-readable title
        category: Catalog category
        severity: Severity label (low/medium/high/critical)
        remediation: Remediation text used for recommendations
        check_type: Probe key used to look up the local probe
        check_class: How the outcome is folded
        order: Position in the resolved tuple; drives deterministic ordering
    """

    check_id: str
    framework_id: str
    control_id: str
    title: str
    category: str
    severity: str
    remediation: str
    check_type: str
    check_class: CheckClass = CheckClass.CONTROL
    order: int = 0

    @property
    def is_scored(self) -> bool:
        return self.check_class in (CheckClass.CONTROL, CheckClass.PENETRATION)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for the agent transport."""
        return {
            "checkId": self.check_id,
            "framework": self.framework_id,
            "controlId": self.control_id,
            "title": self.title,
            "category": self.category,
            "severity": self.severity,
            "checkType": self.check_type,
            "checkClass": self.check_class.value,
        }


SCRIPT_CHECK_ORDER = 1_000_000


def script_check() -> CheckSpec:
    """The pseudo-check that carries a custom agent script."""
    return CheckSpec(
        check_id="script:custom",
        framework_id="script",
        control_id="CUSTOM-SCRIPT",
        title="Custom agent script",
        category="Script",
        severity="low",
        remediation="",
        check_type="custom_script",
        check_class=CheckClass.SCRIPT,
        order=SCRIPT_CHECK_ORDER,
    )


@dataclass(frozen=True)
class LocalExecutor:
    """In-process executor. There is exactly one per scan."""

    mode: ExecutionMode = field(default=ExecutionMode.LOCAL, init=False)

    @property
    def key(self) -> str:
        return LOCAL_EXECUTOR_KEY


@dataclass(frozen=True)
class RemoteExecutor:
    """Executor bound to one registered agent."""

    agent_id: str
    agent_name: str = ""
    endpoint: Optional[str] = None
    mode: ExecutionMode = field(default=ExecutionMode.AGENT, init=False)

    @property
    def key(self) -> str:
        return self.agent_id


Executor = Union[LocalExecutor, RemoteExecutor]


@dataclass(frozen=True)
class UnitOutcome:
    """
    Settled result of one (check, executor) execution unit.

    Exactly one of payload or error_kind is set. Payload shape depends on
    the check class:
        control/penetration: {"result": "pass|fail|warning", "evidence",
                              "description", "severity"}
        vulnerability:       {"detected": bool, "type", "severity",
                              "description", "impact", "solution", "cvss"}
        script:              opaque agent output
    """

    check: CheckSpec
    executor_key: str
    mode: ExecutionMode
    payload: Optional[Dict[str, Any]] = None
    error_kind: Optional[ExecutionErrorKind] = None
    error_message: str = ""
    execution_time: float = 0.0

    @property
    def failed(self) -> bool:
        return self.error_kind is not None

    @property
    def sort_key(self):
        return (self.check.order, self.executor_key)

    @classmethod
    def success(
        cls,
        check: CheckSpec,
        executor: "Executor",
        payload: Dict[str, Any],
        execution_time: float = 0.0,
    ) -> "UnitOutcome":
        return cls(
            check=check,
            executor_key=executor.key,
            mode=executor.mode,
            payload=payload,
            execution_time=execution_time,
        )

    @classmethod
    def from_error(
        cls,
        check: CheckSpec,
        executor: "Executor",
        error: ExecutionError,
        execution_time: float = 0.0,
    ) -> "UnitOutcome":
        return cls(
            check=check,
            executor_key=executor.key,
            mode=executor.mode,
            error_kind=error.kind,
            error_message=error.message,
            execution_time=execution_time,
        )


@dataclass(frozen=True)
class DepthProfile:
    """
    Latency and breadth bounds for one scan depth.

    Attributes:
        unit_timeout: Hard timeout for a single execution unit (seconds)
        scan_deadline: Hard deadline for the whole scan (seconds)
        min_severity: Lowest control severity included at this depth
    """

    unit_timeout: float
    scan_deadline: float
    min_severity: str = "low"


DEPTH_PROFILES: Dict[str, DepthProfile] = {
    "basic": DepthProfile(unit_timeout=10.0, scan_deadline=60.0, min_severity="high"),
    "standard": DepthProfile(unit_timeout=30.0, scan_deadline=300.0),
    "comprehensive": DepthProfile(unit_timeout=60.0, scan_deadline=900.0),
    "deep": DepthProfile(unit_timeout=120.0, scan_deadline=1800.0),
}


def get_depth_profile(depth: str) -> DepthProfile:
    """Look up the profile for a depth name (enum or plain string)."""
    key = getattr(depth, "value", depth)
    return DEPTH_PROFILES[key]
