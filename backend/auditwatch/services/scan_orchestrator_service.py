"""
Scan Orchestrator Service

Central coordinator for compliance scans. Drives every scan through its
lifecycle:

    accepted -> running -> {completed, failed}

Responsibilities:
    1. Validate the request and resolve its checks (fails fast, nothing dispatched)
    2. Resolve executors: the local executor, or the requested available agents
    3. Fan out one execution unit per (check, executor) pair, concurrently,
       bounded by a semaphore and by the depth-derived scan deadline
    4. Honour cancellation: unsettled units become cancelled failures
    5. Hand all outcomes to the result aggregator and store the terminal record

Individual unit failures never abort a scan. A scan fails outright only when
no executor could be dispatched, when no executor was reachable for any unit,
or when it was cancelled.

Example:
    orchestrator = ScanOrchestrator(
        check_registry=registry,
        agent_registry=agents,
        executor=ScanExecutor(probes, transport),
        aggregator=ResultAggregator(),
        scan_repository=ScanRepository(),
    )
    result = await orchestrator.submit(ScanRequest(target="https://example.com", frameworks=["hipaa"]))
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.enums import ScanState, ScanStatus
from ..models.scan_models import ScanError, ScanProgress, ScanRequest, ScanResult, utc_now
from ..repositories import ScanRepository
from .agent_registry import AgentRegistry
from .check_registry import CheckRegistry
from .engine.exceptions import ExecutionError, ExecutionErrorKind, InvalidRequestError, ScanNotFoundError
from .engine.executor import ScanExecutor, interrupted_outcome
from .engine.models import (
    CheckSpec,
    DepthProfile,
    Executor,
    LocalExecutor,
    RemoteExecutor,
    UnitOutcome,
    get_depth_profile,
    script_check,
)
from .result_aggregation_service import ResultAggregator

logger = logging.getLogger(__name__)

Unit = Tuple[CheckSpec, Executor]


@dataclass
class _ScanRun:
    """Bookkeeping for one in-flight scan; owned by the orchestrator."""

    scan_id: str
    request: ScanRequest
    checks: Tuple[CheckSpec, ...]
    accepted_at: datetime
    progress: ScanProgress
    schedule_id: Optional[str] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional["asyncio.Task[ScanResult]"] = None


class ScanOrchestrator:
    """
    Orchestrates scans across the local scanner and remote agents.

    Attributes:
        check_registry: Resolves frameworks into checks
        agent_registry: Source of available agents
        executor: Runs single execution units
        aggregator: Folds outcomes into ScanResults
        scan_repository: Store for running and terminal results
        max_concurrent_units: Upper bound on units running at once per scan
    """

    def __init__(
        self,
        check_registry: CheckRegistry,
        agent_registry: AgentRegistry,
        executor: ScanExecutor,
        aggregator: ResultAggregator,
        scan_repository: ScanRepository,
        max_concurrent_units: int = 32,
    ):
        self.check_registry = check_registry
        self.agent_registry = agent_registry
        self.executor = executor
        self.aggregator = aggregator
        self.scan_repository = scan_repository
        self.max_concurrent_units = max_concurrent_units
        self._runs: Dict[str, _ScanRun] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, request: ScanRequest, schedule_id: Optional[str] = None) -> ScanResult:
        """
        Run a scan to completion.

        Raises:
            InvalidRequestError: If the request fails validation
            UnknownFrameworkError: If a framework is not in the catalog
        """
        scan_id = await self.start(request, schedule_id=schedule_id)
        return await self.wait(scan_id)

    async def start(self, request: ScanRequest, schedule_id: Optional[str] = None) -> str:
        """
        Accept a scan and run it in the background.

        The running record is stored before this returns, so the scan can be
        polled immediately.

        Returns:
            Scan id
        """
        checks = self.validate(request)

        scan_id = str(uuid.uuid4())
        accepted_at = utc_now()
        progress = ScanProgress(scan_id=scan_id, state=ScanState.ACCEPTED, started_at=accepted_at)
        run = _ScanRun(
            scan_id=scan_id,
            request=request,
            checks=checks,
            accepted_at=accepted_at,
            progress=progress,
            schedule_id=schedule_id,
        )

        await self.scan_repository.save(
            ScanResult(
                id=scan_id,
                timestamp=accepted_at,
                frameworks=list(dict.fromkeys(request.frameworks)),
                target=request.target,
                depth=request.depth,
                status=ScanStatus.RUNNING,
                agent_data=[] if request.is_distributed else None,
                schedule_id=schedule_id,
            )
        )

        self._runs[scan_id] = run
        run.task = asyncio.create_task(self._execute(run), name=f"scan-{scan_id}")
        logger.info(
            f"Accepted scan {scan_id}: frameworks={request.frameworks}, target={request.target or '-'}, "
            f"agents={len(request.agent_ids)}, depth={request.depth.value}, checks={len(checks)}"
        )
        return scan_id

    async def wait(self, scan_id: str) -> ScanResult:
        """Await the terminal record of a scan."""
        run = self._runs.get(scan_id)
        if run is not None and run.task is not None and not run.task.done():
            # Shield so a caller giving up does not cancel the scan itself
            return await asyncio.shield(run.task)
        return await self.get_scan(scan_id)

    async def cancel(self, scan_id: str) -> ScanProgress:
        """
        Request cancellation of a running scan.

        Completed units are kept; outstanding units become cancelled failures
        and the scan ends failed with partial results. Cancelling a terminal
        scan has no effect.

        Raises:
            ScanNotFoundError: If the scan does not exist
        """
        run = self._runs.get(scan_id)
        if run is None:
            return await self.get_progress(scan_id)

        if not run.progress.state.is_terminal and not run.cancel_event.is_set():
            logger.info(f"Cancellation requested for scan {scan_id}")
            run.progress.cancel_requested = True
            run.cancel_event.set()
        return run.progress.model_copy()

    async def get_progress(self, scan_id: str) -> ScanProgress:
        """
        Live progress of a scan.

        Raises:
            ScanNotFoundError: If the scan does not exist
        """
        run = self._runs.get(scan_id)
        if run is not None:
            return run.progress.model_copy()

        result = await self.get_scan(scan_id)
        state = ScanState.RUNNING if result.status == ScanStatus.RUNNING else ScanState(result.status.value)
        return ScanProgress(
            scan_id=scan_id,
            state=state,
            units_total=result.units_total,
            units_completed=result.units_total,
            started_at=result.timestamp,
        )

    async def get_scan(self, scan_id: str) -> ScanResult:
        result = await self.scan_repository.get(scan_id)
        if result is None:
            raise ScanNotFoundError(scan_id)
        return result

    def active_scan_ids(self) -> List[str]:
        return [scan_id for scan_id, run in self._runs.items() if not run.progress.state.is_terminal]

    async def shutdown(self) -> None:
        """Cancel all in-flight scans; used on application shutdown."""
        tasks = [run.task for run in self._runs.values() if run.task is not None and not run.task.done()]
        for run in self._runs.values():
            run.cancel_event.set()
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight scan(s) to settle")
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, request: ScanRequest) -> Tuple[CheckSpec, ...]:
        """
        Validate a request and resolve its checks without dispatching anything.

        Raises:
            InvalidRequestError: For empty selections or when no check applies
            UnknownFrameworkError: If a framework is not in the catalog
        """
        if not request.frameworks:
            raise InvalidRequestError("At least one framework must be selected", field="frameworks")
        if not request.target.strip() and not request.agent_ids:
            raise InvalidRequestError("A target or at least one agent must be selected", field="target")
        if request.custom_script and not request.agent_ids:
            raise InvalidRequestError("Custom scripts can only run on agents", field="customScript")

        checks = self.check_registry.resolve(
            request.frameworks,
            depth=request.depth,
            include_vulnerability_checks=request.include_vuln_scan,
            include_penetration_checks=request.include_penetration_test,
        )
        if not checks:
            raise InvalidRequestError(
                f"No checks apply to frameworks {request.frameworks} at depth '{request.depth.value}'",
                field="frameworks",
            )
        return checks

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _resolve_executors(self, request: ScanRequest) -> Tuple[List[Executor], List[RemoteExecutor], List[ScanError]]:
        """
        Returns:
            (dispatchable executors, dispatched agents, per-agent errors)
        """
        if not request.is_distributed:
            return [LocalExecutor()], [], []

        available, failures = self.agent_registry.partition(request.agent_ids)
        agents = [RemoteExecutor(agent_id=a.id, agent_name=a.name, endpoint=a.endpoint) for a in available]
        errors = [
            ScanError(code=e.error_code, message=e.message, agent_id=e.context.get("agent_id"))
            for e in failures
        ]
        for error in errors:
            logger.warning(f"Agent {error.agent_id} skipped: {error.message}")
        return list(agents), agents, errors

    def _build_units(self, run: _ScanRun, executors: Sequence[Executor]) -> List[Unit]:
        units: List[Unit] = [(check, executor) for check in run.checks for executor in executors]
        if run.request.custom_script:
            script = script_check()
            units.extend((script, executor) for executor in executors if isinstance(executor, RemoteExecutor))
        return units

    async def _execute(self, run: _ScanRun) -> ScanResult:
        try:
            return await self._drive(run)
        except Exception as e:
            logger.exception(f"Scan {run.scan_id} aborted by an internal error: {e}")
            return await self._abort(run, e)
        finally:
            self._runs.pop(run.scan_id, None)

    async def _drive(self, run: _ScanRun) -> ScanResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        request = run.request
        run.progress.state = ScanState.RUNNING

        executors, agents, errors = self._resolve_executors(request)
        agent_list = agents if request.is_distributed else None

        if not executors:
            logger.error(f"Scan {run.scan_id} failed: no executors could be dispatched")
            errors.append(ScanError(code="NO_EXECUTORS", message="No requested agent is available"))
            return await self._finish(run, [], agent_list, errors, ScanStatus.FAILED, loop.time() - started)

        units = self._build_units(run, executors)
        run.progress.units_total = len(units)
        profile = get_depth_profile(request.depth)
        outcomes, cancelled = await self._run_units(run, units, profile, started + profile.scan_deadline)

        status = ScanStatus.COMPLETED
        if cancelled:
            status = ScanStatus.FAILED
            errors.append(ScanError(code="SCAN_CANCELLED", message="Scan cancelled before all checks completed"))
        elif all(o.error_kind == ExecutionErrorKind.TRANSPORT_FAILURE for o in outcomes):
            status = ScanStatus.FAILED
            errors.append(ScanError(code="TARGET_UNREACHABLE", message="No executor could reach the target"))
            logger.error(f"Scan {run.scan_id} failed: every unit hit a transport failure")

        return await self._finish(run, outcomes, agent_list, errors, status, loop.time() - started)

    async def _run_units(
        self,
        run: _ScanRun,
        units: Sequence[Unit],
        profile: DepthProfile,
        deadline: float,
    ) -> Tuple[List[UnitOutcome], bool]:
        """
        Run all units concurrently until they settle, the deadline passes or
        the scan is cancelled.

        Returns:
            (one outcome per unit, whether the scan was cancelled)
        """
        loop = asyncio.get_running_loop()
        semaphore = asyncio.Semaphore(self.max_concurrent_units)
        request = run.request

        async def run_unit(check: CheckSpec, executor: Executor) -> UnitOutcome:
            async with semaphore:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    outcome = interrupted_outcome(check, executor, ExecutionErrorKind.TIMEOUT)
                else:
                    outcome = await self.executor.run(
                        executor,
                        request.target,
                        check,
                        timeout=min(profile.unit_timeout, remaining),
                        custom_script=request.custom_script,
                    )
                run.progress.units_completed += 1
                return outcome

        tasks: Dict["asyncio.Task[UnitOutcome]", Unit] = {
            asyncio.create_task(run_unit(check, executor)): (check, executor) for check, executor in units
        }
        cancel_waiter = asyncio.create_task(run.cancel_event.wait())
        pending = set(tasks)
        cancelled = False

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.warning(f"Scan {run.scan_id} reached its deadline with {len(pending)} unit(s) unsettled")
                    break
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending -= done
                if cancel_waiter in done:
                    cancelled = True
                    logger.info(f"Scan {run.scan_id} cancelled with {len(pending)} unit(s) outstanding")
                    break
        finally:
            cancel_waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        interrupted_kind = ExecutionErrorKind.CANCELLED if cancelled else ExecutionErrorKind.TIMEOUT
        outcomes = []
        for task, (check, executor) in tasks.items():
            if task.cancelled():
                outcomes.append(interrupted_outcome(check, executor, interrupted_kind))
            elif task.exception() is not None:
                error = task.exception()
                logger.error(f"Unit {check.check_id}@{executor.key} crashed: {error!r}")
                outcomes.append(
                    UnitOutcome.from_error(
                        check,
                        executor,
                        ExecutionError(ExecutionErrorKind.CHECK_FAULT, f"Unexpected error: {type(error).__name__}"),
                    )
                )
            else:
                outcomes.append(task.result())
        return outcomes, cancelled

    async def _finish(
        self,
        run: _ScanRun,
        outcomes: List[UnitOutcome],
        agents: Optional[List[RemoteExecutor]],
        errors: List[ScanError],
        status: ScanStatus,
        execution_time: float,
    ) -> ScanResult:
        result = self.aggregator.fold(
            run.scan_id,
            run.request,
            outcomes,
            agents=agents,
            errors=errors,
            status=status,
            timestamp=run.accepted_at,
            execution_time=execution_time,
            schedule_id=run.schedule_id,
        )
        await self.scan_repository.save(result)
        run.progress.state = ScanState(status.value)
        run.progress.units_completed = run.progress.units_total

        logger.info(
            f"Scan {run.scan_id} {status.value}: score={result.score}, findings={len(result.findings)}, "
            f"vulnerabilities={len(result.vulnerabilities)}, time={execution_time:.2f}s"
        )
        try:
            await self.aggregator.finalize(run.request, result)
        except Exception as e:
            # The terminal record is already stored; alerting never changes it
            logger.exception(f"Alert evaluation for scan {run.scan_id} failed: {e}")
        return result

    async def _abort(self, run: _ScanRun, error: Exception) -> ScanResult:
        """Store a failed terminal record for a scan that could not be aggregated."""
        result = ScanResult(
            id=run.scan_id,
            timestamp=run.accepted_at,
            frameworks=list(dict.fromkeys(run.request.frameworks)),
            target=run.request.target,
            depth=run.request.depth,
            status=ScanStatus.FAILED,
            agent_data=[] if run.request.is_distributed else None,
            errors=[ScanError(code="INTERNAL_ERROR", message=f"Scan aborted: {type(error).__name__}")],
            schedule_id=run.schedule_id,
            units_total=run.progress.units_total,
        )
        await self.scan_repository.save(result)
        run.progress.state = ScanState.FAILED
        return result
