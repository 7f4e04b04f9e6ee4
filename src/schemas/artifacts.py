from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Literal, Optional


class DocumentSubmission(BaseModel):
    """Document signal reported by the document store (no file bytes)"""

    document_type: str = Field(..., min_length=1, max_length=100)
    document_name: str = Field(..., min_length=1, max_length=255)
    is_required: bool = True
    verification_status: Literal["PENDING", "VERIFIED", "REJECTED"] = "PENDING"


class DocumentVerification(BaseModel):
    verification_status: Literal["PENDING", "VERIFIED", "REJECTED"]


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: str
    application_id: str
    document_type: str
    document_name: str
    is_required: bool
    verification_status: str
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime


class DocumentList(BaseModel):
    documents: list[DocumentResponse]
    total: int


class PhotoSubmission(BaseModel):
    """Control visit photo reported by the photo store"""

    photo_category: str = Field(..., min_length=1, max_length=100)
    storage_path: Optional[str] = Field(None, max_length=1000)


class PhotoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    photo_id: str
    application_id: str
    photo_category: str
    storage_path: Optional[str] = None
    captured_by: Optional[str] = None
    captured_at: datetime


class PhotoList(BaseModel):
    photos: list[PhotoResponse]
    counts_by_category: dict[str, int]
    total: int


class ReportSubmission(BaseModel):
    """
    Technical or social assessment report

    Saving without `submit` keeps the report as a draft; the
    director review gate only counts submitted reports.
    """

    conclusion: Optional[str] = None
    recommendations: Optional[str] = None
    submit: bool = False


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: str
    application_id: str
    report_type: str
    conclusion: Optional[str] = None
    recommendations: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ReportList(BaseModel):
    reports: list[ReportResponse]
    total: int


class GatePreview(BaseModel):
    """Gate check for a target state without attempting the transition"""

    application_id: str
    target_state: str
    allowed: bool
    reasons: list[str]
    requirements: list[str]


class ControlVisitUpdate(BaseModel):
    """Control visit status reported by the inspection team"""

    visit_status: Literal["SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED"]
    scheduled_date: Optional[datetime] = None
    findings: Optional[str] = None


class ControlVisitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    visit_id: str
    application_id: str
    visit_status: str
    inspector_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    actual_date: Optional[datetime] = None
    findings: Optional[str] = None
    created_at: datetime
    updated_at: datetime
