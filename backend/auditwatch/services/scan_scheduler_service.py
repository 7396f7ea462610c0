"""
Scan Scheduler Service

Re-submits stored scan requests on UTC wall-clock boundaries. The scheduler
is a thin driver over the orchestrator: each due schedule is submitted as an
ordinary scan and the resulting scan id is appended to the schedule history.

Boundaries (always strictly after the reference time):
- hourly:  top of the next hour
- daily:   next midnight
- weekly:  next Monday midnight
- monthly: midnight on the first day of the next month

Missed boundaries are not backfilled: a schedule that was due several
boundaries ago fires once and moves to the next boundary after now.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from ..models.enums import ScanInterval
from ..models.schedule_models import ScanSchedule
from ..models.scan_models import ScanRequest, ScanResult
from ..repositories import ScheduleRepository
from .engine.exceptions import AuditWatchError, InvalidRequestError, ScheduleNotFoundError
from .scan_orchestrator_service import ScanOrchestrator

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_boundary(interval: ScanInterval, now: datetime) -> datetime:
    """
    Next UTC wall-clock boundary strictly after now.

    Args:
        interval: Recurrence interval
        now: Reference time; naive values are treated as UTC

    Returns:
        Timezone-aware UTC datetime
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if interval == ScanInterval.HOURLY:
        return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    elif interval == ScanInterval.DAILY:
        return midnight + timedelta(days=1)
    elif interval == ScanInterval.WEEKLY:
        # Monday is weekday 0; on a Monday the next boundary is a week away
        return midnight + timedelta(days=7 - now.weekday())
    elif interval == ScanInterval.MONTHLY:
        if now.month == 12:
            return midnight.replace(year=now.year + 1, month=1, day=1)
        return midnight.replace(month=now.month + 1, day=1)
    raise ValueError(f"Unsupported interval: {interval}")


class ScanScheduler:
    """
    Recurring scan driver.

    Args:
        orchestrator: Orchestrator used for every run
        repository: Schedule store
        poll_interval: Seconds between ticks of the background loop
        clock: Source of the current time (UTC); injectable for tests
    """

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        repository: ScheduleRepository,
        poll_interval: float = 30.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.orchestrator = orchestrator
        self.repository = repository
        self.poll_interval = poll_interval
        self._clock = clock or _utc_now
        self._in_flight: Set[asyncio.Task] = set()

    async def schedule(
        self,
        request: ScanRequest,
        interval: Optional[ScanInterval] = None,
        now: Optional[datetime] = None,
    ) -> ScanSchedule:
        """
        Register a recurring scan.

        The request is validated up front so a schedule can never hold a
        request the orchestrator would reject.

        Raises:
            InvalidRequestError: If no interval is given or the request is invalid
            UnknownFrameworkError: If a framework is not in the catalog
        """
        interval = interval or request.interval
        if interval is None:
            raise InvalidRequestError("Scheduled scans require an interval", field="interval")
        self.orchestrator.validate(request)

        now = now or self._clock()
        schedule = ScanSchedule(
            id=str(uuid.uuid4()),
            request=request,
            interval=interval,
            next_run_at=next_boundary(interval, now),
            created_at=now,
        )
        await self.repository.save(schedule)
        logger.info(f"Scheduled {interval.value} scan {schedule.id}; first run at {schedule.next_run_at.isoformat()}")
        return schedule

    async def cancel(self, schedule_id: str) -> None:
        """
        Remove a schedule. Runs already in flight finish normally.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
        """
        if not await self.repository.delete(schedule_id):
            raise ScheduleNotFoundError(schedule_id)
        logger.info(f"Cancelled schedule {schedule_id}")

    async def list(self) -> List[ScanSchedule]:
        schedules = await self.repository.find()
        return sorted(schedules, key=lambda s: (s.next_run_at, s.id))

    async def get(self, schedule_id: str) -> ScanSchedule:
        schedule = await self.repository.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """
        Fire every schedule whose next boundary has passed.

        Each due schedule is advanced to the next boundary after now before
        its run starts, so a slow run never causes a double fire.

        Returns:
            Ids of the schedules fired
        """
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        fired = []
        for schedule in await self.repository.find(lambda s: s.next_run_at <= now):
            schedule.next_run_at = next_boundary(schedule.interval, now)
            schedule.last_run_at = now
            await self.repository.save(schedule)

            task = asyncio.create_task(self._run_once(schedule.id, schedule.request))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            fired.append(schedule.id)

        if fired:
            logger.info(f"Scheduler fired {len(fired)} schedule(s)")
        return fired

    async def trigger(self, schedule_id: str) -> ScanResult:
        """
        Run a schedule immediately, outside its boundaries.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
        """
        schedule = await self.get(schedule_id)
        result = await self.orchestrator.submit(schedule.request, schedule_id=schedule_id)
        await self._record_run(schedule_id, result.id)
        return result

    async def _record_run(self, schedule_id: str, scan_id: str) -> None:
        # Cancelled schedules do not record runs that were already in flight
        schedule = await self.repository.get(schedule_id)
        if schedule is not None:
            schedule.history.append(scan_id)
            await self.repository.save(schedule)

    async def _run_once(self, schedule_id: str, request: ScanRequest) -> Optional[str]:
        try:
            result = await self.orchestrator.submit(request, schedule_id=schedule_id)
        except AuditWatchError as e:
            logger.error(f"Scheduled run of {schedule_id} rejected: {e}")
            return None
        except Exception as e:
            logger.exception(f"Scheduled run of {schedule_id} crashed: {e}")
            return None

        await self._record_run(schedule_id, result.id)
        logger.info(f"Scheduled run of {schedule_id} finished: scan {result.id} {result.status.value}")
        return result.id

    async def drain(self) -> None:
        """Wait for all in-flight scheduled runs."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def run(self) -> None:
        """Background loop; runs until cancelled."""
        logger.info(f"Scan scheduler started (poll interval {self.poll_interval}s)")
        try:
            while True:
                await self.tick()
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.info("Scan scheduler stopped")
            raise
