"""
Schedule API Routes

Endpoints:
    GET    /schedules               - List recurring scans
    GET    /schedules/{schedule_id} - Get one schedule with its run history
    DELETE /schedules/{schedule_id} - Cancel a schedule; in-flight runs finish
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status

from ..dependencies import get_scheduler
from ..models.schedule_models import ScanSchedule
from ..services.scan_scheduler_service import ScanScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])


@router.get("", response_model=List[ScanSchedule])
async def list_schedules(scheduler: ScanScheduler = Depends(get_scheduler)) -> List[ScanSchedule]:
    return await scheduler.list()


@router.get("/{schedule_id}", response_model=ScanSchedule)
async def get_schedule(schedule_id: str, scheduler: ScanScheduler = Depends(get_scheduler)) -> ScanSchedule:
    return await scheduler.get(schedule_id)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(schedule_id: str, scheduler: ScanScheduler = Depends(get_scheduler)) -> Response:
    await scheduler.cancel(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
