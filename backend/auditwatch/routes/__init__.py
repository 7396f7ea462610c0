"""
AuditWatch API routers

All routers are mounted under the /api prefix in main.py.
"""

from fastapi import APIRouter

from . import agents, frameworks, scans, schedules

router = APIRouter()
router.include_router(scans.router)
router.include_router(agents.router)
router.include_router(frameworks.router)
router.include_router(schedules.router)

__all__ = ["router"]
