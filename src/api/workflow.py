"""
Workflow API - single action-dispatch endpoint for the workflow engine

The body `{action, ...params}` is parsed into a typed command once, at the
boundary, and dispatched through one match statement.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import Actor, get_current_actor
from ..core.correlation import get_correlation_id
from ..core.database import get_db
from ..core.errors import problem_response
from ..schemas.applications import ApplicationResponse, StepResponse
from ..schemas.workflow import (
    SUPPORTED_ACTIONS,
    AlertList,
    AlertResponse,
    AvailableTransitionResponse,
    AvailableTransitionsResponse,
    CompleteTaskCommand,
    GetAlertsCommand,
    GetAvailableTransitionsCommand,
    GetSlaMetricsCommand,
    GetTasksCommand,
    GetWorkflowStatusCommand,
    HealthCheckCommand,
    HealthResponse,
    MetricsResponse,
    RecordDecisionCommand,
    RecordRecommendationCommand,
    ResolveAlertCommand,
    ResolveAllAlertsCommand,
    ResolveAllResponse,
    ScanSlaCommand,
    TaskList,
    TaskResponse,
    TransitionResponse,
    TransitionStateCommand,
    ValidateTransitionCommand,
    ValidationResponse,
    WorkflowStatusResponse,
    workflow_command_adapter,
)
from ..services.audit import audit_service
from ..services.metrics import performance_metrics
from ..services.sla_monitor import sla_monitor
from ..services.tasks import task_service
from ..workflow.decisions import decision_recorder
from ..workflow.engine import TransitionPayload, transition_engine
from ..workflow.errors import Unauthorized, WorkflowError
from ..workflow.states import ALERT_ADMIN_ROLES, has_authority

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/workflow", tags=["workflow"])

# Actions whose failures are written to the audit log
_AUDITED_ACTIONS = {
    "transition_state": "workflow.transition",
    "record_decision": "workflow.decision",
    "record_recommendation": "workflow.recommendation",
    "resolve_alert": "alert.resolve",
    "resolve_all_alerts": "alert.resolve_all",
    "complete_task": "task.complete",
}


def _alert_list(alerts) -> AlertList:
    return AlertList(
        alerts=[AlertResponse.model_validate(alert) for alert in alerts],
        total=len(alerts),
    )


def dispatch(command: Any, db: Session, actor: Actor) -> Any:
    """Run one typed command; WorkflowErrors propagate to the caller"""
    match command:
        case TransitionStateCommand():
            outcome = transition_engine.transition(
                db,
                command.application_id,
                command.target_state,
                actor,
                TransitionPayload(
                    notes=command.notes,
                    approved_amount=command.approved_amount,
                    assigned_to=command.assigned_to,
                ),
            )
            return TransitionResponse(
                application=ApplicationResponse.model_validate(outcome.application),
                step=StepResponse.model_validate(outcome.step),
                from_state=outcome.from_state.value,
            )

        case ValidateTransitionCommand():
            result = transition_engine.validate_transition(
                db,
                command.application_id,
                command.target_state,
                actor,
                TransitionPayload(notes=command.notes, approved_amount=command.approved_amount),
            )
            return ValidationResponse(valid=result.valid, reasons=result.reasons)

        case GetAvailableTransitionsCommand():
            current, available = transition_engine.available_transitions(db, command.application_id, actor)
            return AvailableTransitionsResponse(
                application_id=command.application_id,
                current_state=current.value,
                available_transitions=[
                    AvailableTransitionResponse(
                        target_state=item.target_state.value,
                        display_name=item.display_name,
                        requirements=item.requirements,
                        gate_satisfied=item.gate_satisfied,
                        blocking_reasons=item.blocking_reasons,
                    )
                    for item in available
                ],
            )

        case GetWorkflowStatusCommand():
            status = transition_engine.workflow_status(db, command.application_id)
            return WorkflowStatusResponse(
                application=ApplicationResponse.model_validate(status.application),
                current_state=status.application.current_state,
                progress_percent=status.progress_percent,
                is_overdue=status.is_overdue,
                history=[StepResponse.model_validate(step) for step in status.steps],
            )

        case RecordDecisionCommand():
            step = decision_recorder.record_decision(
                db,
                command.application_id,
                command.decision,
                command.notes,
                actor,
                approved_amount=command.approved_amount,
            )
            return StepResponse.model_validate(step)

        case RecordRecommendationCommand():
            step = decision_recorder.record_recommendation(
                db,
                command.application_id,
                command.recommendation,
                command.notes,
                actor,
                recommended_amount=command.recommended_amount,
            )
            return StepResponse.model_validate(step)

        case GetAlertsCommand():
            filters = command.filters
            return _alert_list(sla_monitor.get_alerts(
                db,
                resolved=filters.resolved,
                limit=filters.limit,
                severity=filters.severity,
                application_id=filters.application_id,
                alert_type=filters.alert_type,
            ))

        case ResolveAlertCommand():
            alert = sla_monitor.resolve_alert(db, command.alert_id, resolved_by=actor.user_id)
            return AlertResponse.model_validate(alert)

        case ResolveAllAlertsCommand():
            if not has_authority(actor.role, ALERT_ADMIN_ROLES):
                raise Unauthorized(f"Role '{actor.role}' may not resolve all alerts")
            return ResolveAllResponse(resolved_count=sla_monitor.resolve_all(db, resolved_by=actor.user_id))

        case ScanSlaCommand():
            return _alert_list(sla_monitor.scan(db))

        case GetSlaMetricsCommand():
            return MetricsResponse(**performance_metrics(db))

        case GetTasksCommand():
            filters = command.filters
            tasks = task_service.list_tasks(
                db,
                application_id=filters.application_id,
                assigned_to=filters.assigned_to,
                status=filters.status,
                limit=filters.limit,
            )
            return TaskList(tasks=[TaskResponse.model_validate(task) for task in tasks], total=len(tasks))

        case CompleteTaskCommand():
            task = task_service.complete_task(db, command.task_id, command.notes)
            return TaskResponse.model_validate(task)

        case HealthCheckCommand():
            try:
                db.execute(text("SELECT 1"))
                return HealthResponse(status="healthy", database="connected")
            except SQLAlchemyError as e:
                logger.error(f"Workflow health check: database unhealthy: {e}")
                return HealthResponse(status="unhealthy", database="disconnected")


def _resource_of(command: Any) -> tuple[str, str]:
    for attr, resource_type in (("application_id", "application"), ("alert_id", "alert"), ("task_id", "task")):
        value = getattr(command, attr, None)
        if value:
            return resource_type, value
    return "workflow", "*"


def _audit_failure(db: Session, correlation_id: str, actor: Actor, command: Any, error: WorkflowError) -> None:
    """Record a refused or failed mutating action in its own transaction"""
    action = _AUDITED_ACTIONS.get(command.action)
    if action is None:
        return

    resource_type, resource_id = _resource_of(command)
    try:
        audit_service.log(
            db,
            correlation_id=correlation_id,
            actor_id=actor.user_id,
            actor_role=actor.role,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            result="failure" if error.retryable else "rejected",
            metadata={"code": error.code, "detail": error.message, "reasons": error.reasons},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not audit failed {command.action}: {e}", extra={"correlation_id": correlation_id})


@router.post("")
async def workflow_action(
    request: Request,
    body: Any = Body(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    Workflow engine RPC.

    Body is `{"action": "<name>", ...params}`. Unknown actions return 400
    UNSUPPORTED_ACTION; parameters that do not match the action return 422.
    Engine failures return RFC 7807 problems with the failing check's code,
    the full reasons list and whether a retry is safe.
    """
    action = body.get("action") if isinstance(body, dict) else None
    if isinstance(action, str) and action not in SUPPORTED_ACTIONS:
        return problem_response(
            request,
            status=400,
            code="UNSUPPORTED_ACTION",
            title="Unsupported Action",
            detail=f"Action '{action}' is not supported",
        )

    try:
        command = workflow_command_adapter.validate_python(body)
    except ValidationError as e:
        return problem_response(
            request,
            status=422,
            code="INVALID_COMMAND",
            title="Invalid Command",
            detail="Request body does not match the action's parameters",
            reasons=[
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ],
        )

    correlation_id = get_correlation_id()
    try:
        return dispatch(command, db, actor)
    except WorkflowError as e:
        logger.warning(
            f"Workflow action {command.action} refused: {e.code}: {e.message}",
            extra={"correlation_id": correlation_id, "actor_id": actor.user_id},
        )
        _audit_failure(db, correlation_id, actor, command, e)
        return problem_response(
            request,
            status=e.status_code,
            code=e.code,
            title=e.title,
            detail=e.message,
            reasons=e.reasons,
            retryable=e.retryable,
        )
