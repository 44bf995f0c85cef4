"""
Pydantic schemas for API requests

Numeric fields accept numbers or strings; the managers parse them and report
bad values per field, so the models stay permissive.
"""

from decimal import Decimal
from datetime import date
from typing import Optional, Union
from pydantic import BaseModel, Field

NumberInput = Optional[Union[Decimal, str]]


class SchedulePreviewRequest(BaseModel):
    principal: NumberInput = None
    rate_monthly: NumberInput = None
    months: int = Field(..., description="Number of monthly periods")
    method: str = "french"


# Farmer schemas
class CreateFarmerRequest(BaseModel):
    full_name: str
    cedula: str = Field(..., description="National identity number, e.g. V-12345678")
    phone: Optional[str] = None
    address: Optional[str] = None
    activity: Optional[str] = None
    rif: Optional[str] = None


class CreateParcelRequest(BaseModel):
    name: str
    area_hectares: NumberInput = None
    crop: Optional[str] = None
    location: Optional[str] = None
    is_linked_to_client: bool = False


# Inspection schemas
class ScheduleInspectionRequest(BaseModel):
    parcel_id: str
    inspector: str
    scheduled_for: date


class UpdateInspectionStatusRequest(BaseModel):
    status: str
    findings: Optional[str] = None


class EstimationRequest(BaseModel):
    parcel_id: str
    estimated_total_amount: NumberInput = None
    notes: Optional[str] = None


class QualityControlRequest(BaseModel):
    parcel_id: str
    result: str = Field(..., description="approved or rejected")
    inspector: str
    notes: Optional[str] = None


# Financing schemas
class CreateFinancingRequest(BaseModel):
    farmer_id: str = ""
    parcel_id: str = ""
    amount: NumberInput = None
    rate_monthly: NumberInput = None
    term_months: NumberInput = None
    harvest_count: NumberInput = None
    purpose: str = ""
    amortization_method: str = "french"


class TransitionRequest(BaseModel):
    target_status: str
    expected_version: Optional[int] = Field(
        None, description="Version the client last read; stale versions are rejected"
    )


class PaymentRequest(BaseModel):
    amount: NumberInput = None
    method: str = ""
    paid_on: Optional[date] = None
    harvest_reference: Optional[str] = None
    retained_amount: NumberInput = None
