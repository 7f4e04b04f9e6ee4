"""
Decision recorder for the director and ministerial decision states

Decisions are thin wrappers over the transition engine: each decision
type maps to a target state (or to a PENDING step when the case stays
where it is). Ministerial decisions always name their audit step
MINISTER_DECISION; director recommendations that move the case name it
after the state they move to, and those that leave it in place name it
DIRECTOR_REVIEW.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ..core.auth import Actor
from ..db.models import ApplicationStep
from ..services.notifications import DECISION_RECORDED
from .engine import TransitionEngine, TransitionPayload, amount_problem, transition_engine
from .errors import InvalidAmount, MissingJustification, Unauthorized
from .states import DIRECTOR_ROLES, MINISTER_ROLES, ApplicationState, has_authority

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONDITIONAL_APPROVAL = "CONDITIONAL_APPROVAL"
    DEFERRED = "DEFERRED"


class Recommendation(str, Enum):
    RECOMMEND_APPROVE = "RECOMMEND_APPROVE"
    RECOMMEND_REJECT = "RECOMMEND_REJECT"
    REQUEST_MORE_INFO = "REQUEST_MORE_INFO"
    DEFER = "DEFER"


APPROVAL_DECISIONS = frozenset({DecisionType.APPROVED, DecisionType.CONDITIONAL_APPROVAL})

_DECISION_TARGETS = {
    DecisionType.APPROVED: ApplicationState.CLOSURE,
    DecisionType.CONDITIONAL_APPROVAL: ApplicationState.CLOSURE,
    DecisionType.REJECTED: ApplicationState.REJECTED,
}

_RECOMMENDATION_TARGETS = {
    Recommendation.RECOMMEND_APPROVE: ApplicationState.MINISTER_DECISION,
    Recommendation.RECOMMEND_REJECT: ApplicationState.REJECTED,
}


def _require_notes(notes: Optional[str], what: str) -> str:
    notes = (notes or "").strip()
    if not notes:
        raise MissingJustification(f"Notes are required to record a {what}")
    return notes


def _check_amount(amount: Optional[Decimal], required: bool) -> None:
    if amount is None:
        if required:
            raise InvalidAmount("An approved amount is required for an approval decision")
        return
    problem = amount_problem(amount)
    if problem:
        raise InvalidAmount(problem)


class DecisionRecorder:
    """Records director recommendations and ministerial decisions"""

    def __init__(self, engine: Optional[TransitionEngine] = None):
        self.engine = engine or transition_engine

    def record_decision(
        self,
        db: Session,
        application_id: str,
        decision_type: DecisionType,
        notes: Optional[str],
        actor: Actor,
        approved_amount: Optional[Decimal] = None,
    ) -> ApplicationStep:
        """
        Record the ministerial decision

        APPROVED / CONDITIONAL_APPROVAL close the application with the amount,
        REJECTED rejects it, DEFERRED leaves it in MINISTER_DECISION with a
        PENDING step.

        Raises:
            ApplicationNotFound, AlreadyTerminal: nothing left to decide
            IllegalTransition: application is not awaiting a decision
            Unauthorized: actor lacks ministerial authority
            MissingJustification: empty notes
            InvalidAmount: approval without a non-negative amount
        """
        decision_type = DecisionType(decision_type)
        self.engine.ensure_in_state(db, application_id, ApplicationState.MINISTER_DECISION)
        if not has_authority(actor.role, MINISTER_ROLES):
            raise Unauthorized(f"Role '{actor.role}' may not record ministerial decisions")

        notes = _require_notes(notes, "decision")
        _check_amount(approved_amount, required=decision_type in APPROVAL_DECISIONS)

        step_name = ApplicationState.MINISTER_DECISION.value
        if decision_type == DecisionType.DEFERRED:
            step = self.engine.record_pending_step(
                db,
                application_id,
                actor,
                step_name=step_name,
                notes=f"DEFERRED: {notes}",
                expected_state=ApplicationState.MINISTER_DECISION,
                action="workflow.decision",
            )
        else:
            payload = TransitionPayload(
                notes=f"{decision_type.value}: {notes}",
                approved_amount=approved_amount if decision_type in APPROVAL_DECISIONS else None,
            )
            step = self.engine.transition(
                db,
                application_id,
                _DECISION_TARGETS[decision_type],
                actor,
                payload,
                step_name=step_name,
                expected_state=ApplicationState.MINISTER_DECISION,
            ).step

        self.engine.notifier.emit(DECISION_RECORDED, {
            "application_id": application_id,
            "decision": decision_type.value,
            "approved_amount": str(approved_amount) if approved_amount is not None else None,
            "actor_id": actor.user_id,
            "step_id": step.step_id,
        })
        return step

    def record_recommendation(
        self,
        db: Session,
        application_id: str,
        recommendation: Recommendation,
        notes: Optional[str],
        actor: Actor,
        recommended_amount: Optional[Decimal] = None,
    ) -> ApplicationStep:
        """Record the director's recommendation from DIRECTOR_REVIEW"""
        recommendation = Recommendation(recommendation)
        self.engine.ensure_in_state(db, application_id, ApplicationState.DIRECTOR_REVIEW)
        if not has_authority(actor.role, DIRECTOR_ROLES):
            raise Unauthorized(f"Role '{actor.role}' may not record director recommendations")

        notes = _require_notes(notes, "recommendation")
        _check_amount(recommended_amount, required=False)

        target = _RECOMMENDATION_TARGETS.get(recommendation)
        if target is None:
            return self.engine.record_pending_step(
                db,
                application_id,
                actor,
                step_name=ApplicationState.DIRECTOR_REVIEW.value,
                notes=f"{recommendation.value}: {notes}",
                expected_state=ApplicationState.DIRECTOR_REVIEW,
                action="workflow.recommendation",
            )

        payload = TransitionPayload(
            notes=f"{recommendation.value}: {notes}",
            approved_amount=recommended_amount if target == ApplicationState.MINISTER_DECISION else None,
        )
        return self.engine.transition(
            db,
            application_id,
            target,
            actor,
            payload,
            expected_state=ApplicationState.DIRECTOR_REVIEW,
        ).step


# Singleton
decision_recorder = DecisionRecorder()
