"""
Typed workflow errors

Every error carries the HTTP status and problem code used by the RPC layer,
and whether the caller may safely retry (the operation did not apply).
"""
from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow engine failures"""

    code = "WORKFLOW_ERROR"
    title = "Workflow Error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, reasons: Optional[list[str]] = None):
        super().__init__(message)
        self.message = message
        self.reasons = list(reasons or [])


class ApplicationNotFound(WorkflowError):
    code = "APPLICATION_NOT_FOUND"
    title = "Application Not Found"
    status_code = 404

    def __init__(self, application_id: str):
        super().__init__(f"Application not found: {application_id}")
        self.application_id = application_id


class AlreadyTerminal(WorkflowError):
    code = "ALREADY_TERMINAL"
    title = "Application Already Closed"
    status_code = 409

    def __init__(self, application_id: str, state: str):
        super().__init__(f"Application {application_id} is in terminal state {state}")
        self.application_id = application_id
        self.state = state


class IllegalTransition(WorkflowError):
    code = "ILLEGAL_TRANSITION"
    title = "Transition Not Allowed"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Transition from {current} to {target} is not allowed")
        self.current_state = current
        self.target_state = target


class GateNotSatisfied(WorkflowError):
    code = "GATE_NOT_SATISFIED"
    title = "Transition Requirements Not Met"
    status_code = 422

    def __init__(self, target: str, reasons: list[str]):
        super().__init__(
            f"{len(reasons)} requirement(s) not met for {target}",
            reasons=reasons,
        )
        self.target_state = target


class MissingJustification(WorkflowError):
    code = "MISSING_JUSTIFICATION"
    title = "Justification Required"
    status_code = 422


class InvalidAmount(WorkflowError):
    code = "INVALID_AMOUNT"
    title = "Invalid Amount"
    status_code = 422


class Unauthorized(WorkflowError):
    code = "UNAUTHORIZED"
    title = "Not Authorized"
    status_code = 403


class AlertNotFound(WorkflowError):
    code = "ALERT_NOT_FOUND"
    title = "Alert Not Found"
    status_code = 404

    def __init__(self, alert_id: str):
        super().__init__(f"Alert not found: {alert_id}")


class TaskNotFound(WorkflowError):
    code = "TASK_NOT_FOUND"
    title = "Task Not Found"
    status_code = 404

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")


class StorageTimeout(WorkflowError):
    code = "STORAGE_TIMEOUT"
    title = "Storage Timeout"
    status_code = 503
    retryable = True


class ConcurrentModification(WorkflowError):
    code = "CONCURRENT_MODIFICATION"
    title = "Concurrent Modification"
    status_code = 409
    retryable = True

    def __init__(self, application_id: str):
        super().__init__(
            f"Application {application_id} is being modified by another request"
        )


class StorageFailure(WorkflowError):
    code = "STORAGE_FAILURE"
    title = "Storage Failure"
    status_code = 503
    retryable = True
