from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class ApplicationCreate(BaseModel):
    """Schema for creating a new subsidy application"""

    applicant_name: str = Field(..., min_length=1, max_length=500)
    property_address: Optional[str] = Field(None, max_length=1000)
    requested_amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    priority_level: int = Field(1, ge=1, le=10)  # Higher is more urgent
    assigned_to: Optional[str] = None


class ApplicationResponse(BaseModel):
    """Response schema for application"""

    model_config = ConfigDict(from_attributes=True)

    application_id: str
    application_number: str
    applicant_name: str
    property_address: Optional[str] = None
    requested_amount: Decimal
    recommended_amount: Optional[Decimal] = None
    approved_amount: Optional[Decimal] = None
    priority_level: int
    assigned_to: Optional[str] = None
    current_state: str
    state_entered_at: datetime
    sla_deadline: Optional[datetime] = None
    version: int
    created_by: str
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ApplicationList(BaseModel):
    """List of applications with pagination"""

    applications: list[ApplicationResponse]
    total: int


class StepResponse(BaseModel):
    """One audit step"""

    model_config = ConfigDict(from_attributes=True)

    step_id: str
    application_id: str
    step_name: str
    status: str
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    notes: Optional[str] = None
    sla_hours: Optional[int] = None
    actor_id: str
    actor_role: str
    started_at: Optional[datetime] = None
    completed_at: datetime


class StepList(BaseModel):
    steps: list[StepResponse]
    total: int
