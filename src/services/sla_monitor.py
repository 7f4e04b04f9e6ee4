"""
SLA monitor and alert generator

Scans in-flight applications, compares time-in-state against the SLA policy
table and keeps exactly one open alert per (type, application, state).
Scans only read applications; they never lock rows the transition engine
needs.
"""
import logging
import uuid
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.models import Application, WorkflowAlert
from ..utils.clock import as_utc, utcnow
from ..workflow.errors import AlertNotFound
from ..workflow.states import (
    ApplicationState,
    SlaPolicyError,
    TERMINAL_STATES,
    build_sla_policy,
    format_state_name,
)
from .notifications import ALERT_RAISED, NotificationDispatcher, notification_dispatcher

logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    SLA_VIOLATION = "SLA_VIOLATION"
    BOTTLENECK = "BOTTLENECK"
    ERROR = "ERROR"
    PERFORMANCE = "PERFORMANCE"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
_SCAN_MANAGED = {AlertType.SLA_VIOLATION.value, AlertType.BOTTLENECK.value}
URGENT_PRIORITY = 5


def dedup_key(alert_type: AlertType, application_id: Optional[str], state: Optional[str]) -> str:
    return f"{alert_type.value}:{application_id or '-'}:{state or '-'}"


def violation_severity(overrun_ratio: float, priority_level: Optional[int]) -> Severity:
    """Severity grows with the overrun; urgent cases escalate one level"""
    if overrun_ratio >= 2.0:
        index = 3
    elif overrun_ratio >= 1.5:
        index = 2
    else:
        index = 1
    if (priority_level or 0) >= URGENT_PRIORITY:
        index = min(index + 1, 3)
    return _SEVERITY_ORDER[index]


class SLAMonitor:
    """Raises and resolves SLA violation and bottleneck alerts"""

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        bottleneck_threshold: Optional[int] = None,
        sla_overrides: Optional[Mapping[str, int]] = None,
    ):
        self.notifier = notifier or notification_dispatcher
        self._bottleneck_threshold = bottleneck_threshold
        self._sla_overrides = sla_overrides

    @property
    def bottleneck_threshold(self) -> int:
        if self._bottleneck_threshold is not None:
            return self._bottleneck_threshold
        return settings.BOTTLENECK_THRESHOLD

    def sla_policy(self) -> dict[ApplicationState, int]:
        overrides = self._sla_overrides if self._sla_overrides is not None else settings.SLA_POLICY_OVERRIDES
        return build_sla_policy(overrides)

    def scan(self, db: Session, now: Optional[datetime] = None) -> list[WorkflowAlert]:
        """
        Run one scan and return the alerts left open

        Idempotent: re-running without an intervening change raises nothing
        new. Failures are logged and degrade to "no new alerts".
        """
        now = as_utc(now) or utcnow()

        try:
            policy = self.sla_policy()
        except SlaPolicyError as e:
            logger.error(f"SLA scan skipped, policy table unusable: {e}", extra={"correlation_id": "sla_scan"})
            return []

        try:
            raised, resolved_count = self._scan(db, policy, now)
            db.commit()
            open_alerts = self.get_alerts(db, resolved=False, limit=None)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"SLA scan failed: {e}", extra={"correlation_id": "sla_scan"})
            return []

        for alert in raised:
            self.notifier.emit(ALERT_RAISED, {
                "alert_id": alert.alert_id,
                "alert_type": alert.alert_type,
                "severity": alert.severity,
                "application_id": alert.application_id,
                "state": alert.state,
                "message": alert.message,
            })

        logger.info(
            f"SLA scan complete: {len(raised)} raised, {resolved_count} resolved, {len(open_alerts)} open",
            extra={"correlation_id": "sla_scan"},
        )
        return open_alerts

    def _scan(
        self,
        db: Session,
        policy: Mapping[ApplicationState, int],
        now: datetime,
    ) -> tuple[list[WorkflowAlert], int]:
        open_alerts = {
            alert.dedup_key: alert
            for alert in db.query(WorkflowAlert).filter(WorkflowAlert.resolved.is_(False)).all()
        }
        in_flight = (
            db.query(Application)
            .filter(Application.current_state.notin_([s.value for s in TERMINAL_STATES]))
            .all()
        )

        raised: list[WorkflowAlert] = []
        active_keys: set[str] = set()
        load: Counter = Counter()

        for application in in_flight:
            state = ApplicationState(application.current_state)
            load[state] += 1

            sla_hours = policy.get(state)
            if not sla_hours:
                continue

            hours_in_state = (now - as_utc(application.state_entered_at)).total_seconds() / 3600
            if hours_in_state <= sla_hours:
                continue

            key = dedup_key(AlertType.SLA_VIOLATION, application.application_id, state.value)
            active_keys.add(key)
            if key in open_alerts:
                continue

            alert = self._new_alert(
                AlertType.SLA_VIOLATION,
                violation_severity(hours_in_state / sla_hours, application.priority_level),
                f"Application {application.application_number} has been in "
                f"{format_state_name(state)} for {hours_in_state:.1f}h (SLA {sla_hours}h)",
                now,
                application_id=application.application_id,
                state=state.value,
            )
            db.add(alert)
            open_alerts[key] = alert
            raised.append(alert)

        threshold = self.bottleneck_threshold
        for state, count in load.items():
            if count <= threshold:
                continue
            key = dedup_key(AlertType.BOTTLENECK, None, state.value)
            active_keys.add(key)
            if key in open_alerts:
                continue

            alert = self._new_alert(
                AlertType.BOTTLENECK,
                Severity.HIGH if count > 2 * threshold else Severity.MEDIUM,
                f"{count} applications waiting in {format_state_name(state)} (threshold {threshold})",
                now,
                state=state.value,
            )
            db.add(alert)
            open_alerts[key] = alert
            raised.append(alert)

        # Conditions that cleared since the last scan
        resolved_count = 0
        for key, alert in open_alerts.items():
            if key in active_keys or alert.alert_type not in _SCAN_MANAGED:
                continue
            self._mark_resolved(alert, now, "sla_monitor")
            resolved_count += 1

        return raised, resolved_count

    def _new_alert(
        self,
        alert_type: AlertType,
        severity: Severity,
        message: str,
        now: datetime,
        application_id: Optional[str] = None,
        state: Optional[str] = None,
    ) -> WorkflowAlert:
        return WorkflowAlert(
            alert_id=f"alert_{uuid.uuid4().hex[:12]}",
            alert_type=alert_type.value,
            severity=severity.value,
            message=message,
            application_id=application_id,
            state=state,
            dedup_key=dedup_key(alert_type, application_id, state),
            resolved=False,
            created_at=now,
        )

    def _mark_resolved(self, alert: WorkflowAlert, now: datetime, resolved_by: str) -> None:
        alert.resolved = True
        alert.resolved_at = now
        alert.resolved_by = resolved_by

    def resolve_for_state(
        self,
        db: Session,
        application_id: str,
        state: str,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Resolve open alerts tied to (application, state)

        Called by the transition engine inside its transaction when the
        application leaves `state`. Commit is handled by caller.
        """
        now = now or utcnow()
        alerts = (
            db.query(WorkflowAlert)
            .filter(
                WorkflowAlert.application_id == application_id,
                WorkflowAlert.state == state,
                WorkflowAlert.resolved.is_(False),
            )
            .all()
        )
        for alert in alerts:
            self._mark_resolved(alert, now, "transition_engine")
        return len(alerts)

    def resolve_alert(self, db: Session, alert_id: str, resolved_by: str) -> WorkflowAlert:
        """Resolve one alert; resolving an already resolved alert is a no-op"""
        alert = db.query(WorkflowAlert).filter_by(alert_id=alert_id).first()
        if alert is None:
            raise AlertNotFound(alert_id)

        if not alert.resolved:
            self._mark_resolved(alert, utcnow(), resolved_by)
            db.commit()
            db.refresh(alert)

        return alert

    def resolve_all(self, db: Session, resolved_by: str) -> int:
        """Resolve every open alert; returns how many were open"""
        alerts = db.query(WorkflowAlert).filter(WorkflowAlert.resolved.is_(False)).all()
        now = utcnow()
        for alert in alerts:
            self._mark_resolved(alert, now, resolved_by)
        db.commit()
        return len(alerts)

    def get_alerts(
        self,
        db: Session,
        resolved: Optional[bool] = None,
        limit: Optional[int] = 50,
        severity: Optional[str] = None,
        application_id: Optional[str] = None,
        alert_type: Optional[str] = None,
    ) -> list[WorkflowAlert]:
        query = db.query(WorkflowAlert)
        if resolved is not None:
            query = query.filter(WorkflowAlert.resolved.is_(resolved))
        if severity:
            query = query.filter(WorkflowAlert.severity == severity)
        if application_id:
            query = query.filter(WorkflowAlert.application_id == application_id)
        if alert_type:
            query = query.filter(WorkflowAlert.alert_type == alert_type)
        query = query.order_by(WorkflowAlert.created_at.desc(), WorkflowAlert.alert_id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()


# Singleton
sla_monitor = SLAMonitor()
