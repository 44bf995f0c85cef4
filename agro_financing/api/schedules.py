"""
Schedule simulation endpoint
"""

from fastapi import APIRouter

from .schemas import SchedulePreviewRequest
from ..financing import preview_schedule


router = APIRouter()


@router.post("/preview")
async def preview(request: SchedulePreviewRequest):
    """Payment schedule for the given terms, without storing anything"""
    result = preview_schedule(
        request.principal, request.rate_monthly, request.months, request.method
    )
    return {"method": request.method, "periods": result.periods, **result.to_dict()}
