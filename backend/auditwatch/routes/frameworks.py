"""
Framework API Routes

Endpoints:
    GET /frameworks - List the compliance framework catalog
"""

from typing import List

from fastapi import APIRouter, Depends

from ..dependencies import get_check_registry
from ..models.framework_models import FrameworkSummary
from ..services.check_registry import CheckRegistry

router = APIRouter(prefix="/frameworks", tags=["Frameworks"])


@router.get("", response_model=List[FrameworkSummary])
async def list_frameworks(registry: CheckRegistry = Depends(get_check_registry)) -> List[FrameworkSummary]:
    return [FrameworkSummary.from_framework(f) for f in registry.list_frameworks()]
