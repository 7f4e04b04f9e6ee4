"""
Transition engine: the only writer of Application.current_state

Every transition runs in one session transaction: row lock, graph and role
checks, gate evaluation, then the state write together with its audit step,
stage task, alert auto-resolve and audit log entry. Any failure rolls the
whole transaction back.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.auth import Actor
from ..core.config import settings
from ..core.correlation import get_correlation_id
from ..db.models import Application, ApplicationStep
from ..services.audit import AuditService, audit_service
from ..services.notifications import TRANSITION_COMPLETED, NotificationDispatcher, notification_dispatcher
from ..services.sla_monitor import SLAMonitor, sla_monitor
from ..services.tasks import TaskService, task_service
from ..utils.clock import as_utc, utcnow
from .errors import (
    AlreadyTerminal,
    ApplicationNotFound,
    ConcurrentModification,
    GateNotSatisfied,
    IllegalTransition,
    InvalidAmount,
    MissingJustification,
    StorageFailure,
    StorageTimeout,
    Unauthorized,
    WorkflowError,
)
from .gates import GateEvaluator, gate_evaluator
from .states import (
    DECISION_STATES,
    DEFAULT_SLA_HOURS,
    ApplicationState,
    SlaPolicyError,
    TRANSITIONS,
    can_enter,
    format_state_name,
    is_legal_edge,
    is_terminal,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs
_LOCK_NOT_AVAILABLE = "55P03"
_QUERY_CANCELED = "57014"

# Position along the main path, for progress reporting
_PROGRESS_STEPS = {
    ApplicationState.DRAFT: 0,
    ApplicationState.INTAKE_REVIEW: 1,
    ApplicationState.CONTROL_ASSIGN: 2,
    ApplicationState.VISIT_SCHEDULED: 3,
    ApplicationState.CONTROL_IN_PROGRESS: 4,
    ApplicationState.TECHNICAL_REVIEW: 5,
    ApplicationState.SOCIAL_REVIEW: 5,
    ApplicationState.DIRECTOR_REVIEW: 6,
    ApplicationState.MINISTER_DECISION: 7,
    ApplicationState.CLOSURE: 8,
    ApplicationState.REJECTED: 8,
}
_PROGRESS_TOTAL = 8

# Stable ordering for listing outgoing edges
_STATE_ORDER = {state: index for index, state in enumerate(ApplicationState)}

# Amount columns are Numeric(14, 2)
_AMOUNT_QUANTUM = Decimal("0.01")
_AMOUNT_LIMIT = Decimal(10) ** 12


@dataclass
class TransitionPayload:
    """Caller-supplied data for a transition; never carries identity"""

    notes: Optional[str] = None
    approved_amount: Optional[Decimal] = None
    assigned_to: Optional[str] = None


@dataclass
class TransitionOutcome:
    application: Application
    step: ApplicationStep
    from_state: ApplicationState


@dataclass
class ValidationResult:
    valid: bool
    reasons: list[str] = field(default_factory=list)


@dataclass
class AvailableTransition:
    target_state: ApplicationState
    display_name: str
    requirements: list[str]
    gate_satisfied: bool
    blocking_reasons: list[str]


@dataclass
class WorkflowStatus:
    application: Application
    progress_percent: int
    is_overdue: bool
    steps: list[ApplicationStep]


def amount_problem(amount: Decimal) -> Optional[str]:
    """Why `amount` cannot be stored as a subsidy amount, or None if it can"""
    if not amount.is_finite():
        return f"Amount must be a finite number, got {amount}"
    if amount < 0:
        return f"Amount must be non-negative, got {amount}"
    if amount >= _AMOUNT_LIMIT:
        return f"Amount must be below {_AMOUNT_LIMIT}, got {amount}"
    if amount != amount.quantize(_AMOUNT_QUANTUM):
        return f"Amount must have at most two decimal places, got {amount}"
    return None


def payload_problems(target: ApplicationState, payload: TransitionPayload) -> list[WorkflowError]:
    """Payload checks for decision states, in reporting order"""
    problems: list[WorkflowError] = []
    notes = (payload.notes or "").strip()

    if target in DECISION_STATES and not notes:
        problems.append(MissingJustification(
            f"Notes are required to move an application to {format_state_name(target)}"
        ))

    amount = payload.approved_amount
    if target == ApplicationState.CLOSURE and amount is None:
        problems.append(InvalidAmount("An approved amount is required to close an application"))
    elif amount is not None:
        problem = amount_problem(amount)
        if problem:
            problems.append(InvalidAmount(problem))

    return problems


def progress_percent(state: ApplicationState) -> int:
    return round(_PROGRESS_STEPS[state] * 100 / _PROGRESS_TOTAL)


def _sqlstate(error: DBAPIError) -> Optional[str]:
    return getattr(error.orig, "pgcode", None)


class TransitionEngine:
    """Serialized, all-or-nothing state transitions for one application at a time"""

    def __init__(
        self,
        gates: Optional[GateEvaluator] = None,
        monitor: Optional[SLAMonitor] = None,
        tasks: Optional[TaskService] = None,
        audit: Optional[AuditService] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.gates = gates or gate_evaluator
        self.monitor = monitor or sla_monitor
        self.tasks = tasks or task_service
        self.audit = audit or audit_service
        self.notifier = notifier or notification_dispatcher

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def transition(
        self,
        db: Session,
        application_id: str,
        target: ApplicationState,
        actor: Actor,
        payload: Optional[TransitionPayload] = None,
        step_name: Optional[str] = None,
        expected_state: Optional[ApplicationState] = None,
        correlation_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Move an application to `target`

        Checks run in order: existence and terminal state, graph edge,
        role authority, gate, decision payload. The first failing check
        raises its WorkflowError and nothing is written.

        Args:
            step_name: Audit step name, defaults to the target state
            expected_state: Refuse unless the application currently sits here
                (decision flows that are only valid from one state)
        """
        target = ApplicationState(target)
        payload = payload or TransitionPayload()
        correlation_id = correlation_id or get_correlation_id()

        with self._storage_guard(db, application_id):
            application = self._load_for_update(db, application_id)
            current = ApplicationState(application.current_state)

            if expected_state is not None and current != expected_state:
                raise IllegalTransition(current.value, target.value)
            if not is_legal_edge(current, target):
                raise IllegalTransition(current.value, target.value)
            if not can_enter(actor.role, current, target):
                raise Unauthorized(
                    f"Role '{actor.role}' may not move an application from "
                    f"{current.value} to {target.value}"
                )

            gate = self.gates.evaluate_application(db, application_id, target)
            if not gate.allowed:
                raise GateNotSatisfied(target.value, gate.reasons)

            problems = payload_problems(target, payload)
            if problems:
                raise problems[0]

            step = self._apply(db, application, current, target, actor, payload, step_name, correlation_id)
            db.commit()
            db.refresh(application)

        logger.info(
            f"Application {application_id} moved {current.value} -> {target.value}",
            extra={"correlation_id": correlation_id, "actor_id": actor.user_id},
        )
        self.notifier.emit(TRANSITION_COMPLETED, {
            "application_id": application_id,
            "application_number": application.application_number,
            "from_state": current.value,
            "to_state": target.value,
            "step_id": step.step_id,
            "actor_id": actor.user_id,
        })
        return TransitionOutcome(application=application, step=step, from_state=current)

    def request_transition(
        self,
        db: Session,
        application_id: str,
        target: ApplicationState,
        actor: Actor,
        payload: Optional[TransitionPayload] = None,
    ) -> Application:
        return self.transition(db, application_id, target, actor, payload).application

    def record_pending_step(
        self,
        db: Session,
        application_id: str,
        actor: Actor,
        step_name: str,
        notes: str,
        expected_state: ApplicationState,
        action: str,
        correlation_id: Optional[str] = None,
    ) -> ApplicationStep:
        """
        Append a PENDING audit step without changing state

        Used for deferrals and information requests. Serialized with
        transitions through the same row lock.
        """
        correlation_id = correlation_id or get_correlation_id()

        with self._storage_guard(db, application_id):
            application = self._load_for_update(db, application_id)
            current = ApplicationState(application.current_state)
            if current != expected_state:
                raise IllegalTransition(current.value, expected_state.value)

            step = self.audit.record_step(
                db,
                application_id=application_id,
                step_name=step_name,
                actor_id=actor.user_id,
                actor_role=actor.role,
                completed_at=self._next_step_time(db, application_id),
                status="PENDING",
                from_state=current.value,
                to_state=current.value,
                notes=notes,
                started_at=as_utc(application.state_entered_at),
            )
            self.audit.log(
                db,
                correlation_id=correlation_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                action=action,
                resource_type="application",
                resource_id=application_id,
                result="success",
                metadata={"state": current.value, "step_id": step.step_id},
            )
            db.commit()

        logger.info(
            f"Pending {step_name} step recorded for {application_id}",
            extra={"correlation_id": correlation_id, "actor_id": actor.user_id},
        )
        return step

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def validate_transition(
        self,
        db: Session,
        application_id: str,
        target: ApplicationState,
        actor: Actor,
        payload: Optional[TransitionPayload] = None,
    ) -> ValidationResult:
        """Dry run of `transition`: collects every failing check, writes nothing"""
        target = ApplicationState(target)
        payload = payload or TransitionPayload()
        application = self._get(db, application_id)
        current = ApplicationState(application.current_state)

        if is_terminal(current):
            return ValidationResult(
                valid=False,
                reasons=[f"Application is already in terminal state {current.value}"],
            )

        reasons: list[str] = []
        if not is_legal_edge(current, target):
            reasons.append(f"Transition from {current.value} to {target.value} is not allowed")
        elif not can_enter(actor.role, current, target):
            reasons.append(f"Role '{actor.role}' may not move an application to {target.value}")

        reasons.extend(self.gates.evaluate_application(db, application_id, target).reasons)
        reasons.extend(problem.message for problem in payload_problems(target, payload))
        return ValidationResult(valid=not reasons, reasons=reasons)

    def ensure_in_state(
        self,
        db: Session,
        application_id: str,
        expected_state: ApplicationState,
    ) -> Application:
        """
        Existence, terminal and current-state checks without taking the lock

        Lets decision flows report these before validating their payload.
        `transition` repeats the checks under the row lock.
        """
        application = self._get(db, application_id)
        current = ApplicationState(application.current_state)
        if is_terminal(current):
            raise AlreadyTerminal(application_id, current.value)
        if current != expected_state:
            raise IllegalTransition(current.value, expected_state.value)
        return application

    def available_transitions(
        self,
        db: Session,
        application_id: str,
        actor: Actor,
    ) -> tuple[ApplicationState, list[AvailableTransition]]:
        """Targets the actor may request from the current state"""
        application = self._get(db, application_id)
        current = ApplicationState(application.current_state)

        available = []
        for target in sorted(TRANSITIONS[current], key=_STATE_ORDER.get):
            if not can_enter(actor.role, current, target):
                continue
            gate = self.gates.evaluate_application(db, application_id, target)
            available.append(AvailableTransition(
                target_state=target,
                display_name=format_state_name(target),
                requirements=self.gates.requirements_for(target),
                gate_satisfied=gate.allowed,
                blocking_reasons=gate.reasons,
            ))
        return current, available

    def workflow_status(self, db: Session, application_id: str, now: Optional[datetime] = None) -> WorkflowStatus:
        application = self._get(db, application_id)
        now = as_utc(now) or utcnow()
        deadline = as_utc(application.sla_deadline)

        steps = (
            db.query(ApplicationStep)
            .filter(ApplicationStep.application_id == application_id)
            .order_by(ApplicationStep.completed_at, ApplicationStep.step_id)
            .all()
        )
        return WorkflowStatus(
            application=application,
            progress_percent=progress_percent(ApplicationState(application.current_state)),
            is_overdue=deadline is not None and now > deadline,
            steps=steps,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, db: Session, application_id: str) -> Application:
        application = db.query(Application).filter_by(application_id=application_id).first()
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    def _load_for_update(self, db: Session, application_id: str) -> Application:
        query = db.query(Application).filter_by(application_id=application_id)

        if db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(settings.STORAGE_TIMEOUT_SECONDS * 1000)
            db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
            query = query.with_for_update(nowait=True)

        application = query.first()
        if application is None:
            raise ApplicationNotFound(application_id)
        if is_terminal(ApplicationState(application.current_state)):
            raise AlreadyTerminal(application_id, application.current_state)
        return application

    def _next_step_time(self, db: Session, application_id: str) -> datetime:
        """Now, but never earlier than the application's latest step"""
        now = utcnow()
        latest = as_utc(
            db.query(func.max(ApplicationStep.completed_at))
            .filter(ApplicationStep.application_id == application_id)
            .scalar()
        )
        return max(now, latest) if latest else now

    def _sla_policy(self) -> dict[ApplicationState, int]:
        try:
            return self.monitor.sla_policy()
        except SlaPolicyError as e:
            logger.warning(f"Configured SLA policy rejected, using defaults: {e}")
            return dict(DEFAULT_SLA_HOURS)

    def _apply(
        self,
        db: Session,
        application: Application,
        current: ApplicationState,
        target: ApplicationState,
        actor: Actor,
        payload: TransitionPayload,
        step_name: Optional[str],
        correlation_id: str,
    ) -> ApplicationStep:
        application_id = application.application_id
        now = self._next_step_time(db, application_id)
        previous_entered_at = as_utc(application.state_entered_at)
        sla_hours = None if is_terminal(target) else self._sla_policy().get(target)

        application.current_state = target.value
        application.state_entered_at = now
        application.sla_deadline = now + timedelta(hours=sla_hours) if sla_hours else None
        application.updated_at = now

        if current == ApplicationState.DRAFT and application.submitted_at is None:
            application.submitted_at = now
        if is_terminal(target):
            application.completed_at = now

        if target == ApplicationState.CLOSURE:
            application.approved_amount = payload.approved_amount
        elif target == ApplicationState.REJECTED:
            application.approved_amount = None
        elif target == ApplicationState.MINISTER_DECISION and payload.approved_amount is not None:
            application.recommended_amount = payload.approved_amount

        if payload.assigned_to:
            application.assigned_to = payload.assigned_to

        # Version check happens here; a stale row raises StaleDataError
        db.flush()

        step = self.audit.record_step(
            db,
            application_id=application_id,
            step_name=step_name or target.value,
            actor_id=actor.user_id,
            actor_role=actor.role,
            completed_at=now,
            from_state=current.value,
            to_state=target.value,
            notes=payload.notes,
            started_at=previous_entered_at,
            sla_hours=sla_hours,
        )

        resolved = self.monitor.resolve_for_state(db, application_id, current.value, now)
        self.tasks.create_for_state(db, application_id, target, assigned_to=application.assigned_to)

        self.audit.log(
            db,
            correlation_id=correlation_id,
            actor_id=actor.user_id,
            actor_role=actor.role,
            action="workflow.transition",
            resource_type="application",
            resource_id=application_id,
            result="success",
            metadata={
                "from_state": current.value,
                "to_state": target.value,
                "step_id": step.step_id,
                "alerts_resolved": resolved,
            },
        )
        return step

    @contextmanager
    def _storage_guard(self, db: Session, application_id: str) -> Iterator[None]:
        """Roll back on any failure and map storage errors to workflow errors"""
        try:
            yield
        except WorkflowError:
            db.rollback()
            raise
        except StaleDataError as e:
            db.rollback()
            raise ConcurrentModification(application_id) from e
        except PoolTimeoutError as e:
            db.rollback()
            raise StorageTimeout("Timed out waiting for a database connection") from e
        except DBAPIError as e:
            db.rollback()
            code = _sqlstate(e)
            if code == _LOCK_NOT_AVAILABLE:
                raise ConcurrentModification(application_id) from e
            if code == _QUERY_CANCELED:
                raise StorageTimeout(
                    f"Storage did not respond within {settings.STORAGE_TIMEOUT_SECONDS}s"
                ) from e
            logger.error(f"Storage error during transition of {application_id}: {e}")
            raise StorageFailure("Storage error, the transition was not applied") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage error during transition of {application_id}: {e}")
            raise StorageFailure("Storage error, the transition was not applied") from e
        except Exception:
            db.rollback()
            raise


# Singleton
transition_engine = TransitionEngine()
