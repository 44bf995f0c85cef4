"""
Inspection, estimation and quality control endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import AgroFinancingSystem, get_system, get_user_id
from .schemas import (
    ScheduleInspectionRequest, UpdateInspectionStatusRequest,
    EstimationRequest, QualityControlRequest
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def schedule_inspection(
    request: ScheduleInspectionRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Schedule a field inspection of a parcel"""
    inspection = system.inspection_manager.schedule_inspection(
        parcel_id=request.parcel_id,
        inspector=request.inspector,
        scheduled_for=request.scheduled_for,
        user_id=user_id
    )
    return {
        "inspection_id": inspection.id,
        "status": inspection.status.value,
        "message": "Inspection scheduled successfully"
    }


@router.put("/{inspection_id}/status")
async def update_inspection_status(
    inspection_id: str,
    request: UpdateInspectionStatusRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Record the outcome or progress of an inspection"""
    inspection = system.inspection_manager.update_inspection_status(
        inspection_id, request.status, findings=request.findings, user_id=user_id
    )
    return inspection.to_dict()


@router.post("/estimations", status_code=status.HTTP_201_CREATED)
async def record_estimation(
    request: EstimationRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Record the harvest value estimate of a parcel"""
    estimation = system.inspection_manager.record_estimation(
        parcel_id=request.parcel_id,
        estimated_total_amount=request.estimated_total_amount,
        notes=request.notes,
        user_id=user_id
    )
    return estimation.to_dict()


@router.post("/quality-controls", status_code=status.HTTP_201_CREATED)
async def register_quality_control(
    request: QualityControlRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    control = system.inspection_manager.register_quality_control(
        parcel_id=request.parcel_id,
        result=request.result,
        inspector=request.inspector,
        notes=request.notes,
        user_id=user_id
    )
    return control.to_dict()
