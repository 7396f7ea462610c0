"""
Scan and Schedule Repositories

In-memory stores for scan results and recurring scan schedules. Scan
results are keyed by scan id; a running placeholder saved at accept time
is replaced by the terminal record.
"""

from typing import List, Optional

from ..models.enums import ScanStatus
from ..models.schedule_models import ScanSchedule
from ..models.scan_models import ScanResult
from .base_repository import BaseRepository


class ScanRepository(BaseRepository[ScanResult]):
    """Repository for ScanResult records"""

    def __init__(self):
        super().__init__(ScanResult)

    async def list_scans(
        self,
        status: Optional[ScanStatus] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ScanResult]:
        """
        Scans, newest first.

        Args:
            status: Only scans with this status
            skip: Number of scans to skip
            limit: Maximum number of scans returned
        """
        scans = await self.find(lambda s: status is None or s.status == status)
        scans.sort(key=lambda s: s.timestamp, reverse=True)
        end = skip + limit if limit is not None else None
        return scans[skip:end]

    async def count_by_status(self, status: ScanStatus) -> int:
        return await self.count(lambda s: s.status == status)


class ScheduleRepository(BaseRepository[ScanSchedule]):
    """Repository for ScanSchedule records"""

    def __init__(self):
        super().__init__(ScanSchedule)
