"""
Farmer and parcel endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .deps import AgroFinancingSystem, get_system, get_user_id
from .schemas import CreateFarmerRequest, CreateParcelRequest


router = APIRouter()


def _require_farmer(system: AgroFinancingSystem, farmer_id: str):
    farmer = system.farmer_manager.get_farmer(farmer_id)
    if not farmer:
        raise HTTPException(status_code=404, detail="Farmer not found")
    return farmer


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_farmer(
    request: CreateFarmerRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Register a new farmer"""
    farmer = system.farmer_manager.register_farmer(
        full_name=request.full_name,
        cedula=request.cedula,
        phone=request.phone,
        address=request.address,
        activity=request.activity,
        rif=request.rif,
        user_id=user_id
    )
    return {
        "farmer_id": farmer.id,
        "message": "Farmer registered successfully"
    }


@router.get("")
async def list_farmers(
    search: Optional[str] = None,
    active_only: bool = False,
    system: AgroFinancingSystem = Depends(get_system)
):
    """List farmers, optionally filtered by a name or cedula fragment"""
    if search:
        farmers = system.farmer_manager.search_farmers(search)
    else:
        farmers = system.farmer_manager.list_farmers(active_only=active_only)
    return {"farmers": [f.to_dict() for f in farmers]}


@router.get("/{farmer_id}")
async def get_farmer(
    farmer_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    return _require_farmer(system, farmer_id).to_dict()


@router.post("/{farmer_id}/parcels", status_code=status.HTTP_201_CREATED)
async def add_parcel(
    farmer_id: str,
    request: CreateParcelRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Register a parcel for a farmer"""
    _require_farmer(system, farmer_id)
    parcel = system.farmer_manager.add_parcel(
        farmer_id=farmer_id,
        name=request.name,
        area_hectares=request.area_hectares if request.area_hectares is not None else "0",
        crop=request.crop,
        location=request.location,
        is_linked_to_client=request.is_linked_to_client,
        user_id=user_id
    )
    return {
        "parcel_id": parcel.id,
        "message": "Parcel registered successfully"
    }


@router.get("/{farmer_id}/parcels")
async def list_parcels(
    farmer_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    _require_farmer(system, farmer_id)
    return {"parcels": [p.to_dict() for p in system.farmer_manager.list_parcels(farmer_id)]}


@router.get("/{farmer_id}/approved-parcels")
async def list_approved_parcels(
    farmer_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    """Parcels that can back a new financing for this farmer"""
    _require_farmer(system, farmer_id)
    parcels = system.inspection_manager.get_approved_parcels(farmer_id)
    return {
        "parcels": [
            {**p, "estimated_total_amount": str(p["estimated_total_amount"])}
            for p in parcels
        ]
    }
