from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, JSON, Text, Numeric, Index, UniqueConstraint, ForeignKey, event,
    text,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Application(Base):
    """Housing subsidy applications"""

    __tablename__ = "applications"

    # Primary identifiers
    application_id = Column(String, primary_key=True)
    application_number = Column(String, nullable=False, unique=True)

    # Application details
    applicant_name = Column(String, nullable=False)
    property_address = Column(String, nullable=True)
    requested_amount = Column(Numeric(14, 2), nullable=False)
    recommended_amount = Column(Numeric(14, 2), nullable=True)  # Director recommendation
    approved_amount = Column(Numeric(14, 2), nullable=True)  # Set on ministerial approval
    priority_level = Column(Integer, nullable=False, default=1)
    assigned_to = Column(String, nullable=True)

    # Workflow state (written only by the transition engine)
    current_state = Column(String, nullable=False, default="DRAFT", index=True)
    state_entered_at = Column(DateTime(timezone=True), nullable=False)
    sla_deadline = Column(DateTime(timezone=True), nullable=True, index=True)
    version = Column(Integer, nullable=False)

    # Timestamps
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_applications_state_entered", "current_state", "state_entered_at"),
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.application_id}, number={self.application_number}, state={self.current_state})>"


class ApplicationStep(Base):
    """Append-only audit step, one per completed transition or decision"""

    __tablename__ = "application_steps"

    step_id = Column(String, primary_key=True)
    application_id = Column(String, ForeignKey("applications.application_id"), nullable=False, index=True)

    step_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="COMPLETED")  # COMPLETED, PENDING
    from_state = Column(String, nullable=True)
    to_state = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    sla_hours = Column(Integer, nullable=True)

    # Actor (from JWT, never client payload)
    actor_id = Column(String, nullable=False)
    actor_role = Column(String, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_steps_app_completed", "application_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<ApplicationStep(id={self.step_id}, app={self.application_id}, step={self.step_name})>"


class AuditLog(Base):
    """Append-only audit log for all workflow actions"""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    correlation_id = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    actor_id = Column(String, nullable=False)
    actor_role = Column(String, nullable=False)

    action = Column(String, nullable=False)
    resource_type = Column(String, nullable=False)
    resource_id = Column(String, nullable=False, index=True)

    audit_metadata = Column("metadata", JSON, nullable=True)  # Renamed to avoid SQLAlchemy reserved word
    result = Column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, resource={self.resource_id})>"


class ApplicationDocument(Base):
    """Document completion signal from the document store"""

    __tablename__ = "application_documents"

    document_id = Column(String, primary_key=True)
    application_id = Column(String, nullable=False, index=True)

    document_type = Column(String, nullable=False)
    document_name = Column(String, nullable=False)
    is_required = Column(Boolean, nullable=False, default=True)
    verification_status = Column(String, nullable=False, default="PENDING")  # PENDING, VERIFIED, REJECTED
    verified_by = Column(String, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<ApplicationDocument(id={self.document_id}, app={self.application_id}, status={self.verification_status})>"


class ControlPhoto(Base):
    """Control visit photo signal from the photo store"""

    __tablename__ = "control_photos"

    photo_id = Column(String, primary_key=True)
    application_id = Column(String, nullable=False, index=True)

    photo_category = Column(String, nullable=False)
    storage_path = Column(String, nullable=True)
    captured_by = Column(String, nullable=True)
    captured_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_photos_app_category", "application_id", "photo_category"),
    )

    def __repr__(self) -> str:
        return f"<ControlPhoto(id={self.photo_id}, app={self.application_id}, category={self.photo_category})>"


class AssessmentReport(Base):
    """Technical or social assessment report (one of each per application)"""

    __tablename__ = "assessment_reports"

    report_id = Column(String, primary_key=True)
    application_id = Column(String, nullable=False, index=True)

    report_type = Column(String, nullable=False)  # TECHNICAL, SOCIAL
    conclusion = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    submitted_by = Column(String, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("application_id", "report_type", name="uq_reports_app_type"),
    )

    def __repr__(self) -> str:
        return f"<AssessmentReport(id={self.report_id}, app={self.application_id}, type={self.report_type})>"


class ControlVisit(Base):
    """Control visit status signal, one visit per application"""

    __tablename__ = "control_visits"

    visit_id = Column(String, primary_key=True)
    application_id = Column(String, ForeignKey("applications.application_id"), nullable=False, unique=True)

    visit_status = Column(String, nullable=False, default="SCHEDULED")  # SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED
    inspector_id = Column(String, nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    actual_date = Column(DateTime(timezone=True), nullable=True)
    findings = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<ControlVisit(id={self.visit_id}, app={self.application_id}, status={self.visit_status})>"


class WorkflowAlert(Base):
    """SLA violation and bottleneck alerts raised by the SLA monitor"""

    __tablename__ = "workflow_alerts"

    alert_id = Column(String, primary_key=True)
    alert_type = Column(String, nullable=False)  # SLA_VIOLATION, BOTTLENECK, ERROR, PERFORMANCE
    severity = Column(String, nullable=False)  # LOW, MEDIUM, HIGH, CRITICAL
    message = Column(Text, nullable=False)

    application_id = Column(String, nullable=True, index=True)
    state = Column(String, nullable=True)
    dedup_key = Column(String, nullable=False)

    resolved = Column(Boolean, nullable=False, default=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        # At most one open alert per (type, application, state)
        Index(
            "uq_alerts_open_dedup",
            "dedup_key",
            unique=True,
            postgresql_where=text("resolved = false"),
            sqlite_where=text("resolved = 0"),
        ),
    )

    def __repr__(self) -> str:
        return f"<WorkflowAlert(id={self.alert_id}, type={self.alert_type}, resolved={self.resolved})>"


class WorkflowTask(Base):
    """Work item created automatically when an application enters a stage"""

    __tablename__ = "workflow_tasks"

    task_id = Column(String, primary_key=True)
    application_id = Column(String, nullable=False, index=True)

    task_type = Column(String, nullable=False, default="WORKFLOW_STEP")
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    assigned_to = Column(String, nullable=True, index=True)
    priority = Column(Integer, nullable=False, default=3)  # 1 = highest
    status = Column(String, nullable=False, default="PENDING", index=True)  # PENDING, COMPLETED
    auto_generated = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowTask(id={self.task_id}, app={self.application_id}, status={self.status})>"


@event.listens_for(ApplicationStep, "before_update")
@event.listens_for(ApplicationStep, "before_delete")
@event.listens_for(AuditLog, "before_update")
@event.listens_for(AuditLog, "before_delete")
def _reject_audit_mutation(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are append-only")
