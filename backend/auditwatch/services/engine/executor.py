"""
Scan Executor

Runs one check against one target and always settles to a UnitOutcome.
Execution is dispatched on the executor's ExecutionMode tag:

- LOCAL: the probe registered for check.check_type is awaited in-process.
- AGENT: the check is sent to the agent through an AgentTransport.

Every failure is converted into a typed ExecutionError kind:

    asyncio timeout                   -> TIMEOUT
    TargetUnreachableError / transport -> TRANSPORT_FAILURE
    missing probe, probe exception,
    agent-reported error              -> CHECK_FAULT

Cancellation is not swallowed here; the orchestrator cancels unit tasks and
records them with interrupted_outcome().

Example:
    probes = ProbeRegistry()
    probes.register("transport_encryption", check_tls)

    executor = ScanExecutor(probes, transport=HttpAgentTransport())
    outcome = await executor.run(LocalExecutor(), "https://example.com", check, timeout=30)
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .exceptions import ExecutionError, ExecutionErrorKind, TargetUnreachableError
from .models import CheckSpec, Executor, ExecutionMode, RemoteExecutor, UnitOutcome
from .transport import AgentTransport

logger = logging.getLogger(__name__)

Probe = Callable[[str, CheckSpec], Awaitable[Dict[str, Any]]]


class ProbeRegistry:
    """
    Registry of local probes keyed by check type.

    A probe is an async callable ``probe(target, check) -> dict`` returning the
    payload shape for the check's class. An optional default probe handles
    check types without a dedicated registration.
    """

    def __init__(self, default: Optional[Probe] = None):
        self._probes: Dict[str, Probe] = {}
        self._default = default

    def register(self, check_type: str, probe: Probe) -> None:
        if check_type in self._probes:
            logger.info(f"Replacing probe for check type '{check_type}'")
        self._probes[check_type] = probe

    def set_default(self, probe: Optional[Probe]) -> None:
        self._default = probe

    def get(self, check_type: str) -> Optional[Probe]:
        return self._probes.get(check_type, self._default)

    @property
    def is_empty(self) -> bool:
        """True when no check type can be evaluated locally."""
        return not self._probes and self._default is None

    def __contains__(self, check_type: str) -> bool:
        return check_type in self._probes

    def __len__(self) -> int:
        return len(self._probes)

    def __bool__(self) -> bool:
        # A registry holding only a default probe is still usable
        return not self.is_empty


class ScanExecutor:
    """Runs single execution units. Stateless apart from its collaborators."""

    def __init__(self, probes: ProbeRegistry, transport: Optional[AgentTransport] = None):
        self.probes = probes
        self.transport = transport

    async def run(
        self,
        executor: Executor,
        target: str,
        check: CheckSpec,
        timeout: float,
        custom_script: Optional[str] = None,
    ) -> UnitOutcome:
        """
        Execute one (check, executor) unit.

        Args:
            executor: LocalExecutor or RemoteExecutor
            target: Scan target (may be empty for agent-only audits)
            check: Resolved check
            timeout: Hard timeout in seconds for this unit
            custom_script: Script forwarded to remote agents

        Returns:
            UnitOutcome carrying either a payload or an error kind
        """
        started = time.monotonic()
        try:
            payload, reported_time = await asyncio.wait_for(
                self._dispatch(executor, target, check, custom_script),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.debug(f"Unit {check.check_id}@{executor.key} timed out after {timeout:.1f}s")
            error = ExecutionError(
                ExecutionErrorKind.TIMEOUT,
                f"Check timed out after {timeout:.0f}s",
                {"check_id": check.check_id, "executor": executor.key},
            )
            return UnitOutcome.from_error(check, executor, error, time.monotonic() - started)
        except ExecutionError as e:
            logger.debug(f"Unit {check.check_id}@{executor.key} failed: {e.kind.value}")
            return UnitOutcome.from_error(check, executor, e, time.monotonic() - started)

        elapsed = reported_time if reported_time is not None else time.monotonic() - started
        return UnitOutcome.success(check, executor, payload, elapsed)

    async def _dispatch(self, executor: Executor, target: str, check: CheckSpec, custom_script: Optional[str]):
        if executor.mode == ExecutionMode.LOCAL:
            return await self._run_local(target, check), None
        elif executor.mode == ExecutionMode.AGENT:
            return await self._run_remote(executor, target, check, custom_script)
        raise ExecutionError(
            ExecutionErrorKind.CHECK_FAULT,
            f"Unsupported execution mode: {executor.mode}",
        )

    async def _run_local(self, target: str, check: CheckSpec) -> Dict[str, Any]:
        probe = self.probes.get(check.check_type)
        if probe is None:
            raise ExecutionError(
                ExecutionErrorKind.CHECK_FAULT,
                f"No probe registered for check type '{check.check_type}'",
                {"check_id": check.check_id},
            )

        try:
            payload = await probe(target, check)
        except TargetUnreachableError as e:
            raise ExecutionError(
                ExecutionErrorKind.TRANSPORT_FAILURE,
                e.message,
                {"check_id": check.check_id, "target": target},
                cause=e,
            )
        except (ExecutionError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.warning(f"Probe for {check.check_id} raised {type(e).__name__}: {e}")
            raise ExecutionError(
                ExecutionErrorKind.CHECK_FAULT,
                f"Check raised {type(e).__name__}",
                {"check_id": check.check_id},
                cause=e,
            )

        if not isinstance(payload, dict):
            raise ExecutionError(
                ExecutionErrorKind.CHECK_FAULT,
                f"Probe returned {type(payload).__name__}, expected a mapping",
                {"check_id": check.check_id},
            )
        return payload

    async def _run_remote(
        self,
        executor: RemoteExecutor,
        target: str,
        check: CheckSpec,
        custom_script: Optional[str],
    ):
        if self.transport is None:
            raise ExecutionError(
                ExecutionErrorKind.TRANSPORT_FAILURE,
                "No agent transport configured",
                {"agent_id": executor.agent_id},
            )

        envelope = await self.transport.dispatch(executor, check, target, custom_script)
        if envelope.status == "error":
            detail = envelope.data.get("error") or envelope.data.get("message") or "agent reported an error"
            raise ExecutionError(
                ExecutionErrorKind.CHECK_FAULT,
                f"Agent {executor.agent_id}: {detail}",
                {"agent_id": executor.agent_id, "check_id": check.check_id},
            )
        return envelope.data, envelope.execution_time


def interrupted_outcome(
    check: CheckSpec,
    executor: Executor,
    kind: ExecutionErrorKind,
    elapsed: float = 0.0,
) -> UnitOutcome:
    """Outcome for a unit that never settled because the scan was cancelled or hit its deadline."""
    if kind == ExecutionErrorKind.CANCELLED:
        message = "Scan cancelled before check completed"
    else:
        message = "Scan deadline reached before check completed"
    error = ExecutionError(kind, message, {"check_id": check.check_id, "executor": executor.key})
    return UnitOutcome.from_error(check, executor, error, elapsed)
