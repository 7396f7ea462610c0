"""
Repository layer

In-memory stores behind an async repository interface.
"""

from .base_repository import BaseRepository
from .scan_repository import ScanRepository, ScheduleRepository

__all__ = ["BaseRepository", "ScanRepository", "ScheduleRepository"]
