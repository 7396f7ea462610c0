"""
Scan API Routes

Endpoints:
    POST /scan                  - Run a local scan against a target
    POST /remote-audit          - Run a distributed audit on agents (optionally scheduled)
    GET  /scans                 - List scans, newest first
    GET  /scans/{scan_id}       - Get a scan result
    GET  /scans/{scan_id}/status - Live progress of a scan
    POST /scans/{scan_id}/cancel - Cancel a running scan
    GET  /dashboard             - Fleet and scan overview

Both submit endpoints block until the scan settles by default. With
?wait=false they return 202 and the running record, which can be polled.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..dependencies import get_agent_registry, get_orchestrator, get_scheduler
from ..models.enums import FindingStatus, ScanStatus, Severity
from ..models.scan_models import ScanProgress, ScanRequest, ScanResult
from ..services.agent_registry import AgentRegistry
from ..services.scan_orchestrator_service import ScanOrchestrator
from ..services.scan_scheduler_service import ScanScheduler
from .models import DashboardStats, LocalScanRequest, RemoteAuditRequest, ScanListItem, ScanListResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scans"])


async def _run_or_accept(
    orchestrator: ScanOrchestrator,
    request: ScanRequest,
    wait: bool,
    response: Response,
    schedule_id: Optional[str] = None,
) -> ScanResult:
    scan_id = await orchestrator.start(request, schedule_id=schedule_id)
    if wait:
        return await orchestrator.wait(scan_id)
    response.status_code = status.HTTP_202_ACCEPTED
    return await orchestrator.get_scan(scan_id)


@router.post("/scan", response_model=ScanResult)
async def create_scan(
    body: LocalScanRequest,
    response: Response,
    wait: bool = Query(default=True, description="Block until the scan settles"),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ScanResult:
    """
    Run a compliance scan against a single target.

    Returns:
        The terminal ScanResult, or the running record with 202 when wait=false
    """
    logger.info(f"Local scan requested for {body.target} ({', '.join(body.frameworks) or 'no frameworks'})")
    return await _run_or_accept(orchestrator, body.to_scan_request(), wait, response)


@router.post("/remote-audit", response_model=ScanResult)
async def create_remote_audit(
    body: RemoteAuditRequest,
    response: Response,
    wait: bool = Query(default=True, description="Block until the audit settles"),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    scheduler: ScanScheduler = Depends(get_scheduler),
) -> ScanResult:
    """
    Run a distributed audit across agents.

    When scheduled is set, the request is also registered as a recurring
    schedule and the immediate run is recorded against it (scheduleId).
    """
    request = body.to_scan_request()
    logger.info(f"Remote audit requested on {len(body.agent_ids)} agent(s), scheduled={body.scheduled}")

    if body.scheduled:
        schedule = await scheduler.schedule(request)
        if wait:
            return await scheduler.trigger(schedule.id)
        return await _run_or_accept(orchestrator, request, wait, response, schedule_id=schedule.id)

    return await _run_or_accept(orchestrator, request, wait, response)


@router.get("/scans", response_model=ScanListResponse)
async def list_scans(
    scan_status: Optional[ScanStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ScanListResponse:
    repository = orchestrator.scan_repository
    scans = await repository.list_scans(status=scan_status, skip=offset, limit=limit)
    total = await repository.count(lambda s: scan_status is None or s.status == scan_status)
    return ScanListResponse(
        scans=[
            ScanListItem(
                id=scan.id,
                timestamp=scan.timestamp,
                frameworks=scan.frameworks,
                target=scan.target,
                status=scan.status.value,
                score=scan.score,
                findings=len(scan.findings),
                agents=len(scan.agent_data) if scan.agent_data is not None else None,
                schedule_id=scan.schedule_id,
            )
            for scan in scans
        ],
        total=total,
    )


@router.get("/scans/{scan_id}", response_model=ScanResult)
async def get_scan(scan_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanResult:
    return await orchestrator.get_scan(scan_id)


@router.get("/scans/{scan_id}/status", response_model=ScanProgress)
async def get_scan_status(scan_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanProgress:
    return await orchestrator.get_progress(scan_id)


@router.post("/scans/{scan_id}/cancel", response_model=ScanProgress)
async def cancel_scan(scan_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanProgress:
    """Request cancellation; the scan settles as failed with partial results."""
    return await orchestrator.cancel(scan_id)


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    agent_registry: AgentRegistry = Depends(get_agent_registry),
    scheduler: ScanScheduler = Depends(get_scheduler),
) -> DashboardStats:
    """
    Overview of the fleet and scan history.

    Average score and failing finding counts cover completed scans only.
    """
    repository = orchestrator.scan_repository
    completed = await repository.list_scans(status=ScanStatus.COMPLETED)
    agent_counts = agent_registry.counts()

    failing_by_severity = {Severity.CRITICAL: 0, Severity.HIGH: 0}
    for scan in completed:
        for finding in scan.findings:
            if finding.status == FindingStatus.FAIL and finding.severity in failing_by_severity:
                failing_by_severity[finding.severity] += 1

    average = round(sum(s.score for s in completed) / len(completed), 1) if completed else 0.0

    return DashboardStats(
        agents_online=agent_counts["online"] + agent_counts["scanning"],
        agents_total=agent_counts["total"],
        scans_running=await repository.count_by_status(ScanStatus.RUNNING),
        scans_completed=len(completed),
        scans_failed=await repository.count_by_status(ScanStatus.FAILED),
        average_score=average,
        critical_findings=failing_by_severity[Severity.CRITICAL],
        high_findings=failing_by_severity[Severity.HIGH],
        active_schedules=len(await scheduler.list()),
    )
