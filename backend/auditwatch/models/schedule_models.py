"""
Schedule Models

A schedule re-submits a stored ScanRequest on a UTC wall-clock boundary.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import ApiModel
from .enums import ScanInterval
from .scan_models import ScanRequest, utc_now


class ScanSchedule(ApiModel):
    """Recurring scan definition and its run history."""

    id: str
    request: ScanRequest
    interval: ScanInterval
    next_run_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
    last_run_at: Optional[datetime] = None
    history: List[str] = Field(default_factory=list, description="Result ids of completed runs, oldest first")
