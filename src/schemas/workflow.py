"""
Workflow RPC commands and responses

The single workflow endpoint takes `{action, ...params}`. Each action is a
typed command model; the union is discriminated on `action`.
"""
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union, get_args

from ..workflow.decisions import DecisionType, Recommendation
from ..workflow.states import ApplicationState
from .applications import ApplicationResponse, StepResponse


class TransitionStateCommand(BaseModel):
    action: Literal["transition_state"]
    application_id: str
    target_state: ApplicationState
    notes: Optional[str] = None
    approved_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    assigned_to: Optional[str] = None


class ValidateTransitionCommand(BaseModel):
    action: Literal["validate_transition"]
    application_id: str
    target_state: ApplicationState
    notes: Optional[str] = None
    approved_amount: Optional[Decimal] = None


class GetAvailableTransitionsCommand(BaseModel):
    action: Literal["get_available_transitions"]
    application_id: str


class GetWorkflowStatusCommand(BaseModel):
    action: Literal["get_workflow_status"]
    application_id: str


class RecordDecisionCommand(BaseModel):
    action: Literal["record_decision"]
    application_id: str
    decision: DecisionType
    notes: str
    approved_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)


class RecordRecommendationCommand(BaseModel):
    action: Literal["record_recommendation"]
    application_id: str
    recommendation: Recommendation
    notes: str
    recommended_amount: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)


class AlertFilters(BaseModel):
    resolved: Optional[bool] = None
    limit: int = Field(50, ge=1, le=500)
    severity: Optional[Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]] = None
    application_id: Optional[str] = None
    alert_type: Optional[Literal["SLA_VIOLATION", "BOTTLENECK", "ERROR", "PERFORMANCE"]] = None


class GetAlertsCommand(BaseModel):
    action: Literal["get_alerts"]
    filters: AlertFilters = Field(default_factory=AlertFilters)


class ResolveAlertCommand(BaseModel):
    action: Literal["resolve_alert"]
    alert_id: str


class ResolveAllAlertsCommand(BaseModel):
    action: Literal["resolve_all_alerts"]


class ScanSlaCommand(BaseModel):
    action: Literal["scan_sla"]


class GetSlaMetricsCommand(BaseModel):
    action: Literal["get_sla_metrics"]


class TaskFilters(BaseModel):
    application_id: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Optional[Literal["PENDING", "COMPLETED"]] = None
    limit: int = Field(100, ge=1, le=500)


class GetTasksCommand(BaseModel):
    action: Literal["get_tasks"]
    filters: TaskFilters = Field(default_factory=TaskFilters)


class CompleteTaskCommand(BaseModel):
    action: Literal["complete_task"]
    task_id: str
    notes: Optional[str] = None


class HealthCheckCommand(BaseModel):
    action: Literal["health_check"]


_COMMAND_MODELS = (
    TransitionStateCommand,
    ValidateTransitionCommand,
    GetAvailableTransitionsCommand,
    GetWorkflowStatusCommand,
    RecordDecisionCommand,
    RecordRecommendationCommand,
    GetAlertsCommand,
    ResolveAlertCommand,
    ResolveAllAlertsCommand,
    ScanSlaCommand,
    GetSlaMetricsCommand,
    GetTasksCommand,
    CompleteTaskCommand,
    HealthCheckCommand,
)

WorkflowCommand = Annotated[Union[_COMMAND_MODELS], Field(discriminator="action")]

workflow_command_adapter = TypeAdapter(WorkflowCommand)

SUPPORTED_ACTIONS = frozenset(
    get_args(model.model_fields["action"].annotation)[0] for model in _COMMAND_MODELS
)


class TransitionResponse(BaseModel):
    application: ApplicationResponse
    step: StepResponse
    from_state: str


class ValidationResponse(BaseModel):
    valid: bool
    reasons: list[str]


class AvailableTransitionResponse(BaseModel):
    target_state: str
    display_name: str
    requirements: list[str]
    gate_satisfied: bool
    blocking_reasons: list[str]


class AvailableTransitionsResponse(BaseModel):
    application_id: str
    current_state: str
    available_transitions: list[AvailableTransitionResponse]


class WorkflowStatusResponse(BaseModel):
    application: ApplicationResponse
    current_state: str
    progress_percent: int
    is_overdue: bool
    history: list[StepResponse]


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: str
    alert_type: str
    severity: str
    message: str
    application_id: Optional[str] = None
    state: Optional[str] = None
    resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime


class AlertList(BaseModel):
    alerts: list[AlertResponse]
    total: int


class ResolveAllResponse(BaseModel):
    resolved_count: int


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: str
    application_id: str
    task_type: str
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: int
    status: str
    auto_generated: bool
    created_at: datetime
    completed_at: Optional[datetime] = None


class TaskList(BaseModel):
    tasks: list[TaskResponse]
    total: int


class StateMetrics(BaseModel):
    state: str
    display_name: str
    sla_hours: Optional[int] = None
    current_load: int
    avg_processing_hours: float
    sla_compliance: float
    throughput: int


class MetricsResponse(BaseModel):
    generated_at: datetime
    states: list[StateMetrics]
    total_in_pipeline: int
    avg_processing_days: float
    sla_compliance: float


class HealthResponse(BaseModel):
    status: str
    database: str
