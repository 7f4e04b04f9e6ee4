import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..db.models import ApplicationStep, AuditLog


class AuditService:
    """Append-only audit logging"""

    def log(
        self,
        db: Session,
        correlation_id: str,
        actor_id: str,
        actor_role: str,
        action: str,
        resource_type: str,
        resource_id: str,
        result: str,
        metadata: dict | None = None,
    ) -> None:
        """
        Write audit log entry

        Args:
            db: Database session
            correlation_id: Request correlation ID
            actor_id: Actor identifier (user ID, JWT sub)
            actor_role: Actor role
            action: Action performed (e.g., "workflow.transition")
            resource_type: Resource type (e.g., "application")
            resource_id: Resource identifier
            result: Outcome (success, failure, rejected)
            metadata: Additional metadata
        """
        entry = AuditLog(
            correlation_id=correlation_id,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            result=result,
            audit_metadata=metadata,
        )
        db.add(entry)
        # Commit is handled by caller

    def record_step(
        self,
        db: Session,
        application_id: str,
        step_name: str,
        actor_id: str,
        actor_role: str,
        completed_at: datetime,
        status: str = "COMPLETED",
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        notes: Optional[str] = None,
        started_at: Optional[datetime] = None,
        sla_hours: Optional[int] = None,
    ) -> ApplicationStep:
        """
        Append an application step (the per-application audit trail)

        Steps are immutable once flushed. Commit is handled by caller so the
        step lands in the same transaction as the state change.
        """
        step = ApplicationStep(
            step_id=f"step_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            step_name=step_name,
            status=status,
            from_state=from_state,
            to_state=to_state,
            notes=notes,
            sla_hours=sla_hours,
            actor_id=actor_id,
            actor_role=actor_role,
            started_at=started_at,
            completed_at=completed_at,
        )
        db.add(step)
        db.flush()
        return step


# Singleton
audit_service = AuditService()
