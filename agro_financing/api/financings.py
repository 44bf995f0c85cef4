"""
Financing endpoints: requests, status workflow, schedules and payments
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import AgroFinancingSystem, get_system, get_role, get_user_id
from .schemas import CreateFinancingRequest, TransitionRequest, PaymentRequest
from ..config import get_config


router = APIRouter()


def _financing_response(system: AgroFinancingSystem, financing) -> dict:
    data = financing.to_dict()
    data["outstanding_balance"] = str(system.financing_manager.outstanding_balance(financing.id))
    data["currency"] = get_config().currency_code
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_financing(
    request: CreateFinancingRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Register a financing request in draft"""
    financing = system.financing_manager.create_financing(
        farmer_id=request.farmer_id,
        parcel_id=request.parcel_id,
        amount=request.amount,
        rate_monthly=request.rate_monthly,
        term_months=request.term_months,
        harvest_count=request.harvest_count,
        purpose=request.purpose,
        amortization_method=request.amortization_method,
        user_id=user_id
    )
    return {
        "financing_id": financing.id,
        "status": financing.status.value,
        "version": financing.version,
        "message": "Financing created successfully"
    }


@router.get("")
async def list_financings(
    status: Optional[str] = None,
    farmer_id: Optional[str] = None,
    system: AgroFinancingSystem = Depends(get_system)
):
    """List financings, newest first"""
    financings = system.financing_manager.list_financings(status=status, farmer_id=farmer_id)
    return {"financings": [f.to_dict() for f in financings]}


@router.get("/{financing_id}")
async def get_financing(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    financing = system.financing_manager.require_financing(financing_id)
    return _financing_response(system, financing)


@router.delete("/{financing_id}")
async def delete_financing(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Delete a draft or cancelled financing"""
    system.financing_manager.delete_financing(financing_id, user_id=user_id)
    return {"message": "Financing deleted successfully"}


@router.get("/{financing_id}/transitions")
async def get_allowed_transitions(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system),
    role: Optional[str] = Depends(get_role)
):
    """Statuses the caller's role may move this financing to"""
    financing = system.financing_manager.require_financing(financing_id)
    allowed = system.financing_manager.allowed_transitions(financing_id, role)
    return {
        "financing_id": financing_id,
        "current_status": financing.status.value,
        "version": financing.version,
        "allowed": [s.value for s in allowed]
    }


@router.post("/{financing_id}/transitions")
async def transition_financing(
    financing_id: str,
    request: TransitionRequest,
    system: AgroFinancingSystem = Depends(get_system),
    role: Optional[str] = Depends(get_role),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Move a financing to a new status"""
    financing = system.financing_manager.transition_status(
        financing_id,
        request.target_status,
        role,
        expected_version=request.expected_version,
        user_id=user_id
    )
    return {
        "financing_id": financing.id,
        "status": financing.status.value,
        "version": financing.version,
        "message": "Status updated successfully"
    }


@router.post("/{financing_id}/schedule", status_code=status.HTTP_201_CREATED)
async def generate_schedule(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Compute and store the payment schedule"""
    result = system.financing_manager.generate_schedule(financing_id, user_id=user_id)
    return {"financing_id": financing_id, **result.to_dict()}


@router.get("/{financing_id}/schedule")
async def get_schedule(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    system.financing_manager.require_financing(financing_id)
    rows = system.financing_manager.get_schedule(financing_id)
    return {
        "financing_id": financing_id,
        "schedule": [
            {
                "period": row.period,
                "payment": str(row.payment),
                "interest": str(row.interest),
                "principal": str(row.principal),
                "remaining": str(row.remaining),
            }
            for row in rows
        ]
    }


@router.post("/{financing_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    financing_id: str,
    request: PaymentRequest,
    system: AgroFinancingSystem = Depends(get_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Record a payment against an active financing"""
    payment = system.financing_manager.record_payment(
        financing_id,
        amount=request.amount,
        method=request.method,
        paid_on=request.paid_on,
        harvest_reference=request.harvest_reference,
        retained_amount=request.retained_amount,
        user_id=user_id
    )
    return {
        "payment_id": payment.id,
        "amount": str(payment.amount),
        "farmer_earnings": str(payment.farmer_earnings),
        "outstanding_balance": str(system.financing_manager.outstanding_balance(financing_id)),
        "message": "Payment recorded successfully"
    }


@router.get("/{financing_id}/payments")
async def list_payments(
    financing_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    system.financing_manager.require_financing(financing_id)
    payments = system.financing_manager.list_payments(financing_id)
    return {"payments": [p.to_dict() for p in payments]}
