"""
Automatic work tasks created as applications enter each stage
"""
import uuid
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from ..db.models import WorkflowTask
from ..utils.clock import utcnow
from ..workflow.errors import TaskNotFound
from ..workflow.states import ApplicationState


class TaskTemplate(NamedTuple):
    title: str
    description: str
    priority: int


TASK_TEMPLATES: dict[ApplicationState, TaskTemplate] = {
    ApplicationState.INTAKE_REVIEW: TaskTemplate(
        "Review Application Intake",
        "Review and validate all application information and documents",
        3,
    ),
    ApplicationState.CONTROL_ASSIGN: TaskTemplate(
        "Assign Control Inspector",
        "Assign a qualified inspector for property control visit",
        3,
    ),
    ApplicationState.VISIT_SCHEDULED: TaskTemplate(
        "Conduct Control Visit",
        "Perform on-site property inspection and document findings",
        2,
    ),
    ApplicationState.TECHNICAL_REVIEW: TaskTemplate(
        "Prepare Technical Report",
        "Analyze technical aspects and prepare comprehensive technical report",
        3,
    ),
    ApplicationState.SOCIAL_REVIEW: TaskTemplate(
        "Prepare Social Report",
        "Assess social circumstances and prepare social impact report",
        3,
    ),
    ApplicationState.DIRECTOR_REVIEW: TaskTemplate(
        "Director Review and Recommendation",
        "Review all reports and provide recommendation for ministerial decision",
        1,
    ),
    ApplicationState.MINISTER_DECISION: TaskTemplate(
        "Ministerial Decision Required",
        "Final decision on subsidy application approval and amount",
        1,
    ),
}


class TaskService:
    """Workflow task creation and completion"""

    def create_for_state(
        self,
        db: Session,
        application_id: str,
        state: ApplicationState,
        assigned_to: Optional[str] = None,
    ) -> Optional[WorkflowTask]:
        """Create the stage task for `state`, if it has one. Commit is handled by caller."""
        template = TASK_TEMPLATES.get(state)
        if template is None:
            return None

        task = WorkflowTask(
            task_id=f"task_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            task_type="WORKFLOW_STEP",
            title=template.title,
            description=template.description,
            assigned_to=assigned_to,
            priority=template.priority,
            status="PENDING",
            auto_generated=True,
        )
        db.add(task)
        return task

    def list_tasks(
        self,
        db: Session,
        application_id: Optional[str] = None,
        assigned_to: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[WorkflowTask]:
        query = db.query(WorkflowTask)
        if application_id:
            query = query.filter(WorkflowTask.application_id == application_id)
        if assigned_to:
            query = query.filter(WorkflowTask.assigned_to == assigned_to)
        if status:
            query = query.filter(WorkflowTask.status == status)
        return query.order_by(WorkflowTask.created_at.desc()).limit(limit).all()

    def complete_task(self, db: Session, task_id: str, notes: Optional[str] = None) -> WorkflowTask:
        """Mark a task completed; completing it again is a no-op"""
        task = db.query(WorkflowTask).filter_by(task_id=task_id).first()
        if task is None:
            raise TaskNotFound(task_id)

        if task.status != "COMPLETED":
            task.status = "COMPLETED"
            task.completed_at = utcnow()
            if notes:
                task.description = f"{task.description or ''}\n\nCompletion Notes: {notes}".strip()
            db.commit()
            db.refresh(task)

        return task


# Singleton
task_service = TaskService()
