import pytest
from datetime import timedelta

from src.db.models import WorkflowAlert
from src.services.notifications import ALERT_RAISED, NotificationDispatcher
from src.services.sla_monitor import (
    AlertType,
    SLAMonitor,
    Severity,
    dedup_key,
    violation_severity,
)
from src.utils.clock import utcnow
from src.workflow.engine import transition_engine
from src.workflow.errors import AlertNotFound
from src.workflow.states import ApplicationState


@pytest.fixture
def monitor() -> SLAMonitor:
    return SLAMonitor(notifier=NotificationDispatcher(), bottleneck_threshold=10)


def _open_alerts(db):
    return db.query(WorkflowAlert).filter(WorkflowAlert.resolved.is_(False)).all()


class TestSeverity:
    @pytest.mark.parametrize("ratio,priority,expected", [
        (1.1, 1, Severity.MEDIUM),
        (1.5, 1, Severity.HIGH),
        (2.0, 1, Severity.CRITICAL),
        (1.1, 5, Severity.HIGH),
        (2.5, 9, Severity.CRITICAL),
        (1.2, None, Severity.MEDIUM),
    ])
    def test_violation_severity(self, ratio, priority, expected):
        assert violation_severity(ratio, priority) == expected

    def test_dedup_key(self):
        assert dedup_key(AlertType.SLA_VIOLATION, "app_1", "DRAFT") == "SLA_VIOLATION:app_1:DRAFT"
        assert dedup_key(AlertType.BOTTLENECK, None, "DRAFT") == "BOTTLENECK:-:DRAFT"


class TestScan:
    def test_raises_violation_for_overdue_application(self, test_db, create_application, monitor):
        app = create_application(current_state="INTAKE_REVIEW", hours_in_state=60)

        alerts = monitor.scan(test_db)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == "SLA_VIOLATION"
        assert alert.application_id == app.application_id
        assert alert.state == "INTAKE_REVIEW"
        assert alert.severity == "MEDIUM"
        assert app.application_number in alert.message

    def test_within_sla_raises_nothing(self, test_db, create_application, monitor):
        create_application(current_state="INTAKE_REVIEW", hours_in_state=10)

        assert monitor.scan(test_db) == []

    def test_terminal_applications_ignored(self, test_db, create_application, monitor):
        create_application(current_state="REJECTED", hours_in_state=5000)

        assert monitor.scan(test_db) == []

    def test_repeated_scans_do_not_duplicate(self, test_db, create_application, monitor):
        create_application(current_state="INTAKE_REVIEW", hours_in_state=200)

        first = monitor.scan(test_db)
        second = monitor.scan(test_db)

        assert len(first) == 1
        assert [a.alert_id for a in second] == [a.alert_id for a in first]
        assert test_db.query(WorkflowAlert).count() == 1

    def test_emits_only_for_new_alerts(self, test_db, create_application):
        events = []
        notifier = NotificationDispatcher()
        notifier.subscribe(lambda event_type, payload: events.append(event_type))
        monitor = SLAMonitor(notifier=notifier, bottleneck_threshold=10)
        create_application(current_state="DRAFT", hours_in_state=100)

        monitor.scan(test_db)
        monitor.scan(test_db)

        assert events == [ALERT_RAISED]

    def test_bottleneck_alert(self, test_db, create_application):
        monitor = SLAMonitor(notifier=NotificationDispatcher(), bottleneck_threshold=2)
        for _ in range(3):
            create_application(current_state="TECHNICAL_REVIEW")

        alerts = monitor.scan(test_db)

        assert len(alerts) == 1
        assert alerts[0].alert_type == "BOTTLENECK"
        assert alerts[0].application_id is None
        assert alerts[0].severity == "MEDIUM"

    def test_severe_bottleneck(self, test_db, create_application):
        monitor = SLAMonitor(notifier=NotificationDispatcher(), bottleneck_threshold=1)
        for _ in range(3):
            create_application(current_state="DRAFT")

        alerts = monitor.scan(test_db)

        assert alerts[0].severity == "HIGH"

    def test_cleared_condition_is_resolved(self, test_db, create_application, monitor):
        app = create_application(current_state="DRAFT", hours_in_state=100)
        monitor.scan(test_db)
        alert = _open_alerts(test_db)[0]

        # Leave the state behind the monitor's back
        app.current_state = "INTAKE_REVIEW"
        app.state_entered_at = utcnow()
        test_db.commit()

        assert monitor.scan(test_db) == []
        test_db.refresh(alert)
        assert alert.resolved is True
        assert alert.resolved_by == "sla_monitor"

    def test_transition_resolves_and_later_scan_stays_quiet(self, test_db, create_application, monitor, admin):
        app = create_application(current_state="DRAFT", hours_in_state=100)
        monitor.scan(test_db)

        transition_engine.transition(test_db, app.application_id, ApplicationState.INTAKE_REVIEW, admin)

        assert _open_alerts(test_db) == []
        assert monitor.scan(test_db) == []

    def test_manual_alerts_survive_scans(self, test_db, create_alert, monitor):
        create_alert(alert_type="ERROR", message="Storage degraded")

        alerts = monitor.scan(test_db)

        assert len(alerts) == 1
        assert alerts[0].alert_type == "ERROR"

    def test_scan_respects_explicit_now(self, test_db, create_application, monitor):
        create_application(current_state="INTAKE_REVIEW", hours_in_state=10)

        alerts = monitor.scan(test_db, now=utcnow() + timedelta(hours=200))

        assert len(alerts) == 1
        assert alerts[0].severity == "CRITICAL"

    def test_unusable_policy_degrades_to_no_alerts(self, test_db, create_application):
        monitor = SLAMonitor(notifier=NotificationDispatcher(), sla_overrides={"CLOSURE": 5})
        create_application(current_state="DRAFT", hours_in_state=500)

        assert monitor.scan(test_db) == []
        assert test_db.query(WorkflowAlert).count() == 0

    def test_policy_override_applies(self, test_db, create_application):
        monitor = SLAMonitor(notifier=NotificationDispatcher(), sla_overrides={"DRAFT": 1})
        create_application(current_state="DRAFT", hours_in_state=3)

        alerts = monitor.scan(test_db)

        assert len(alerts) == 1
        assert alerts[0].severity == "CRITICAL"


class TestAlertManagement:
    def test_resolve_alert(self, test_db, create_alert, monitor):
        alert = create_alert()

        resolved = monitor.resolve_alert(test_db, alert.alert_id, "director_001")

        assert resolved.resolved is True
        assert resolved.resolved_by == "director_001"
        assert resolved.resolved_at is not None

    def test_resolve_alert_is_idempotent(self, test_db, create_alert, monitor):
        alert = create_alert()
        first = monitor.resolve_alert(test_db, alert.alert_id, "director_001")
        resolved_at = first.resolved_at

        second = monitor.resolve_alert(test_db, alert.alert_id, "admin_001")

        assert second.resolved_by == "director_001"
        assert second.resolved_at == resolved_at

    def test_resolve_unknown_alert(self, test_db, monitor):
        with pytest.raises(AlertNotFound):
            monitor.resolve_alert(test_db, "alert_missing", "admin_001")

    def test_resolve_all(self, test_db, create_alert, monitor):
        create_alert()
        create_alert()
        create_alert(resolved=True)

        assert monitor.resolve_all(test_db, "admin_001") == 2
        assert _open_alerts(test_db) == []
        assert monitor.resolve_all(test_db, "admin_001") == 0

    def test_get_alerts_filters(self, test_db, create_alert, monitor):
        create_alert(severity="HIGH", application_id="app_a")
        create_alert(severity="LOW", application_id="app_b")
        create_alert(severity="HIGH", resolved=True)

        assert len(monitor.get_alerts(test_db)) == 3
        assert len(monitor.get_alerts(test_db, resolved=False)) == 2
        assert len(monitor.get_alerts(test_db, severity="HIGH")) == 2
        assert [a.application_id for a in monitor.get_alerts(test_db, application_id="app_b")] == ["app_b"]
        assert len(monitor.get_alerts(test_db, limit=1)) == 1

    def test_get_alerts_newest_first(self, test_db, create_alert, monitor):
        older = create_alert(created_at=utcnow() - timedelta(hours=2))
        newer = create_alert()

        alerts = monitor.get_alerts(test_db)

        assert [a.alert_id for a in alerts] == [newer.alert_id, older.alert_id]
