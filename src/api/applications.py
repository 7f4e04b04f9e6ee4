"""
Applications API - Create and read housing subsidy applications

State is never written here; every state change goes through the
workflow endpoint.
"""

import uuid
from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..core.auth import Actor, get_current_actor
from ..core.config import settings
from ..core.correlation import get_correlation_id
from ..core.database import get_db
from ..db.models import Application, ApplicationStep
from ..schemas.applications import (
    ApplicationCreate,
    ApplicationList,
    ApplicationResponse,
    StepList,
)
from ..services.audit import audit_service
from ..utils.clock import utcnow
from ..workflow.states import DEFAULT_SLA_HOURS, ApplicationState, SlaPolicyError, build_sla_policy

router = APIRouter(prefix="/api/v1/applications", tags=["applications"])


def get_application_or_404(db: Session, application_id: str) -> Application:
    application = db.query(Application).filter_by(application_id=application_id).first()

    if not application:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Application not found: {application_id}"
        )

    return application


def _draft_sla_hours() -> int:
    try:
        return build_sla_policy(settings.SLA_POLICY_OVERRIDES)[ApplicationState.DRAFT]
    except SlaPolicyError:
        return DEFAULT_SLA_HOURS[ApplicationState.DRAFT]


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def create_application(
    application_data: ApplicationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Create a new housing subsidy application in DRAFT.

    The DRAFT SLA clock starts at creation.
    """
    now = utcnow()
    application_id = f"app_{uuid.uuid4().hex[:12]}"
    application = Application(
        application_id=application_id,
        application_number=f"APP-{now.year}-{uuid.uuid4().hex[:6].upper()}",
        applicant_name=application_data.applicant_name,
        property_address=application_data.property_address,
        requested_amount=application_data.requested_amount,
        priority_level=application_data.priority_level,
        assigned_to=application_data.assigned_to,
        current_state=ApplicationState.DRAFT.value,
        state_entered_at=now,
        sla_deadline=now + timedelta(hours=_draft_sla_hours()),
        created_by=actor.user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(application)

    audit_service.log(
        db,
        correlation_id=get_correlation_id(),
        actor_id=actor.user_id,
        actor_role=actor.role,
        action="application.create",
        resource_type="application",
        resource_id=application_id,
        result="success",
        metadata={"requested_amount": str(application_data.requested_amount)},
    )

    db.commit()
    db.refresh(application)

    return application


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Get application by ID."""
    return get_application_or_404(db, application_id)


@router.get("", response_model=ApplicationList)
async def list_applications(
    state: Optional[ApplicationState] = None,
    assigned_to: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    List applications, newest first.

    Optional filtering by workflow state and assignee.
    Paginated with limit/offset.
    """
    query = db.query(Application)

    if state:
        query = query.filter(Application.current_state == state.value)
    if assigned_to:
        query = query.filter(Application.assigned_to == assigned_to)

    total = query.count()
    applications = (
        query.order_by(Application.created_at.desc(), Application.application_id)
        .offset(offset)
        .limit(limit)
        .all()
    )

    return ApplicationList(
        applications=applications,
        total=total
    )


@router.get("/{application_id}/steps", response_model=StepList)
async def list_steps(
    application_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Audit steps for an application in completion order."""
    get_application_or_404(db, application_id)

    steps = (
        db.query(ApplicationStep)
        .filter_by(application_id=application_id)
        .order_by(ApplicationStep.completed_at, ApplicationStep.step_id)
        .all()
    )

    return StepList(
        steps=steps,
        total=len(steps)
    )
