"""
Artifacts API - completion signals from the document, photo and report stores

Only metadata lands here (verification status, photo category, control
visit status, report submission); file bytes stay in the stores. The gate evaluator reads these
tables.
"""

import uuid
from typing import Literal
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import Actor, get_current_actor
from ..core.database import get_db
from ..db.models import Application, ApplicationDocument, AssessmentReport, ControlPhoto, ControlVisit
from ..schemas.artifacts import (
    ControlVisitResponse,
    ControlVisitUpdate,
    DocumentList,
    DocumentResponse,
    DocumentSubmission,
    DocumentVerification,
    GatePreview,
    PhotoList,
    PhotoResponse,
    PhotoSubmission,
    ReportList,
    ReportResponse,
    ReportSubmission,
)
from ..utils.clock import utcnow
from ..workflow.gates import gate_evaluator
from ..workflow.states import (
    CONTROL_VISIT_ROLES,
    DOCUMENT_ROLES,
    REPORT_ROLES,
    ApplicationState,
    Role,
    has_authority,
    is_terminal,
)
from .applications import get_application_or_404

router = APIRouter(prefix="/api/v1/applications/{application_id}", tags=["artifacts"])


def get_writable_application(
    db: Session,
    application_id: str,
    actor: Actor,
    allowed: frozenset[Role],
    what: str,
) -> Application:
    """
    Load an application whose artifact signals `actor` may change.

    404 if missing, 403 if the role lacks authority, 409 once the
    application is closed.
    """
    application = get_application_or_404(db, application_id)

    if not has_authority(actor.role, allowed):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{actor.role}' may not {what}"
        )

    if is_terminal(ApplicationState(application.current_state)):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Application {application_id} is closed ({application.current_state})"
        )

    return application


def _apply_verification(document: ApplicationDocument, verification_status: str, actor: Actor) -> None:
    document.verification_status = verification_status
    if verification_status == "VERIFIED":
        document.verified_by = actor.user_id
        document.verified_at = utcnow()
    else:
        document.verified_by = None
        document.verified_at = None


def upsert_report(
    db: Session,
    application_id: str,
    report_type: str,
    report_data: ReportSubmission,
    actor: Actor,
) -> AssessmentReport:
    """
    Create or update the single report of `report_type`.

    Returns the report without committing.
    Caller is responsible for db.commit().
    """
    report = db.query(AssessmentReport).filter_by(
        application_id=application_id,
        report_type=report_type
    ).first()

    if report is None:
        report = AssessmentReport(
            report_id=f"rpt_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            report_type=report_type,
        )
        db.add(report)

    if report_data.conclusion is not None:
        report.conclusion = report_data.conclusion
    if report_data.recommendations is not None:
        report.recommendations = report_data.recommendations

    if report_data.submit:
        if not (report.conclusion or "").strip() or not (report.recommendations or "").strip():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="A report must have a conclusion and recommendations before it is submitted"
            )
        report.submitted_by = actor.user_id
        report.submitted_at = utcnow()

    return report


@router.post("/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def submit_document(
    application_id: str,
    document_data: DocumentSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Register a document reported by the document store."""
    get_writable_application(db, application_id, actor, DOCUMENT_ROLES, "register documents")

    document = ApplicationDocument(
        document_id=f"doc_{uuid.uuid4().hex[:12]}",
        application_id=application_id,
        document_type=document_data.document_type,
        document_name=document_data.document_name,
        is_required=document_data.is_required,
    )
    _apply_verification(document, document_data.verification_status, actor)
    db.add(document)
    db.commit()
    db.refresh(document)

    return document


@router.patch("/documents/{document_id}", response_model=DocumentResponse)
async def verify_document(
    application_id: str,
    document_id: str,
    verification: DocumentVerification,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Set a document's verification status."""
    get_writable_application(db, application_id, actor, DOCUMENT_ROLES, "verify documents")

    document = db.query(ApplicationDocument).filter_by(
        document_id=document_id,
        application_id=application_id
    ).first()

    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document not found: {document_id}"
        )

    _apply_verification(document, verification.verification_status, actor)
    db.commit()
    db.refresh(document)

    return document


@router.get("/documents", response_model=DocumentList)
async def list_documents(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    get_application_or_404(db, application_id)

    documents = db.query(ApplicationDocument).filter_by(
        application_id=application_id
    ).order_by(ApplicationDocument.document_name).all()

    return DocumentList(
        documents=documents,
        total=len(documents)
    )


@router.post("/photos", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED)
async def submit_photo(
    application_id: str,
    photo_data: PhotoSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Register a control visit photo."""
    get_writable_application(db, application_id, actor, CONTROL_VISIT_ROLES, "register control photos")

    photo = ControlPhoto(
        photo_id=f"photo_{uuid.uuid4().hex[:12]}",
        application_id=application_id,
        photo_category=photo_data.photo_category.upper(),
        storage_path=photo_data.storage_path,
        captured_by=actor.user_id,
        captured_at=utcnow(),
    )
    db.add(photo)
    db.commit()
    db.refresh(photo)

    return photo


@router.get("/photos", response_model=PhotoList)
async def list_photos(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    get_application_or_404(db, application_id)

    photos = db.query(ControlPhoto).filter_by(
        application_id=application_id
    ).order_by(ControlPhoto.captured_at).all()

    counts = dict(
        db.query(ControlPhoto.photo_category, func.count(ControlPhoto.photo_id))
        .filter(ControlPhoto.application_id == application_id)
        .group_by(ControlPhoto.photo_category)
        .all()
    )

    return PhotoList(
        photos=photos,
        counts_by_category=counts,
        total=len(photos)
    )


@router.put("/control-visit", response_model=ControlVisitResponse)
async def update_control_visit(
    application_id: str,
    visit_data: ControlVisitUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Record the control visit status.

    There is one visit per application. Marking it COMPLETED stamps the
    actual visit date and the inspector; the director review gate requires it.
    """
    get_writable_application(db, application_id, actor, CONTROL_VISIT_ROLES, "record control visits")

    visit = db.query(ControlVisit).filter_by(application_id=application_id).first()
    if visit is None:
        visit = ControlVisit(
            visit_id=f"visit_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
        )
        db.add(visit)

    visit.visit_status = visit_data.visit_status
    if visit_data.scheduled_date is not None:
        visit.scheduled_date = visit_data.scheduled_date
    if visit_data.findings is not None:
        visit.findings = visit_data.findings

    if visit_data.visit_status == "COMPLETED":
        visit.inspector_id = actor.user_id
        visit.actual_date = visit.actual_date or utcnow()
    else:
        visit.actual_date = None

    db.commit()
    db.refresh(visit)

    return visit


@router.get("/control-visit", response_model=ControlVisitResponse)
async def get_control_visit(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    get_application_or_404(db, application_id)

    visit = db.query(ControlVisit).filter_by(application_id=application_id).first()
    if not visit:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No control visit recorded for application: {application_id}"
        )

    return visit


@router.put("/reports/{report_type}", response_model=ReportResponse)
async def save_report(
    application_id: str,
    report_type: Literal["TECHNICAL", "SOCIAL"],
    report_data: ReportSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Save the technical or social report, optionally submitting it.

    There is one report of each type per application; saving again updates it.
    """
    get_writable_application(db, application_id, actor, REPORT_ROLES, "save assessment reports")

    report = upsert_report(db, application_id, report_type, report_data, actor)
    db.commit()
    db.refresh(report)

    return report


@router.get("/reports", response_model=ReportList)
async def list_reports(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    get_application_or_404(db, application_id)

    reports = db.query(AssessmentReport).filter_by(
        application_id=application_id
    ).order_by(AssessmentReport.report_type).all()

    return ReportList(
        reports=reports,
        total=len(reports)
    )


@router.get("/gates/{target_state}", response_model=GatePreview)
async def preview_gate(
    application_id: str,
    target_state: ApplicationState,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Evaluate the gate for a target state without transitioning.

    Lists every unmet requirement so staff can remediate in one pass.
    """
    get_application_or_404(db, application_id)

    result = gate_evaluator.evaluate_application(db, application_id, target_state)

    return GatePreview(
        application_id=application_id,
        target_state=target_state.value,
        allowed=result.allowed,
        reasons=result.reasons,
        requirements=gate_evaluator.requirements_for(target_state),
    )
