"""
Tests for the workflow action endpoint
"""
import pytest
from sqlalchemy.exc import OperationalError

from src.db.models import Application, AuditLog
from src.services.audit import audit_service

URL = "/api/v1/workflow"


@pytest.mark.integration
class TestActionParsing:
    def test_unknown_action(self, client):
        response = client.post(URL, json={"action": "launch_rockets"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "UNSUPPORTED_ACTION"
        assert body["status"] == 400
        assert "launch_rockets" in body["detail"]

    def test_missing_action(self, client):
        response = client.post(URL, json={"application_id": "app_1"})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_COMMAND"

    def test_wrong_parameter_types(self, client):
        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": "app_1",
            "target_state": "NOT_A_STATE",
        })

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INVALID_COMMAND"
        assert any("target_state" in reason for reason in body["reasons"])

    def test_non_object_body(self, client):
        response = client.post(URL, json=["transition_state"])

        assert response.status_code == 422

    def test_health_check_action(self, client):
        response = client.post(URL, json={"action": "health_check"})

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}


@pytest.mark.integration
class TestTransitionAction:
    def test_successful_transition(self, client, create_application):
        app = create_application()

        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "INTAKE_REVIEW",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["from_state"] == "DRAFT"
        assert body["application"]["current_state"] == "INTAKE_REVIEW"
        assert body["step"]["actor_id"] == "dev_admin"
        assert body["step"]["actor_role"] == "admin"

    def test_actor_comes_from_token(self, client, create_application, auth_headers):
        app = create_application()

        response = client.post(
            URL,
            json={
                "action": "transition_state",
                "application_id": app.application_id,
                "target_state": "INTAKE_REVIEW",
                "actor_id": "someone_else",
            },
            headers=auth_headers("front_office", "clerk_42"),
        )

        assert response.status_code == 200
        assert response.json()["step"]["actor_id"] == "clerk_42"

    def test_illegal_transition_problem(self, client, create_application, test_db):
        app = create_application()

        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "CLOSURE",
        }, headers={"X-Correlation-Id": "corr-illegal"})

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "ILLEGAL_TRANSITION"
        assert body["retryable"] is False
        assert body["correlation_id"] == "corr-illegal"

        entry = test_db.query(AuditLog).filter_by(resource_id=app.application_id).one()
        assert entry.result == "rejected"
        assert entry.action == "workflow.transition"
        assert entry.audit_metadata["code"] == "ILLEGAL_TRANSITION"

    def test_gate_failure_lists_reasons(self, client, create_application):
        app = create_application(current_state="TECHNICAL_REVIEW")

        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "DIRECTOR_REVIEW",
        })

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "GATE_NOT_SATISFIED"
        assert "Social report has not been submitted" in body["reasons"]
        assert len(body["reasons"]) == 5

    def test_role_from_token_is_enforced(self, client, create_application, auth_headers):
        app = create_application(current_state="MINISTER_DECISION")

        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "CLOSURE",
            "notes": "Approve",
            "approved_amount": "1000",
        }, headers=auth_headers("staff"))

        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_unknown_application(self, client):
        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": "app_missing",
            "target_state": "INTAKE_REVIEW",
        })

        assert response.status_code == 404
        assert response.json()["code"] == "APPLICATION_NOT_FOUND"

    def test_storage_failure_is_retryable(self, client, create_application, test_db, monkeypatch):
        app = create_application()

        def failing_record_step(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(audit_service, "record_step", failing_record_step)

        response = client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "INTAKE_REVIEW",
        })

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "STORAGE_FAILURE"
        assert body["retryable"] is True

        test_db.expire_all()
        assert test_db.get(Application, app.application_id).current_state == "DRAFT"
        entry = test_db.query(AuditLog).filter_by(resource_id=app.application_id).one()
        assert entry.result == "failure"


@pytest.mark.integration
class TestAuthentication:
    def test_invalid_token(self, client):
        response = client.post(
            URL,
            json={"action": "health_check"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    def test_unknown_role_claim(self, client, auth_headers):
        response = client.post(URL, json={"action": "health_check"}, headers=auth_headers("janitor"))

        assert response.status_code == 403


@pytest.mark.integration
class TestQueryActions:
    def test_validate_transition(self, client, create_application):
        app = create_application(current_state="SOCIAL_REVIEW")

        response = client.post(URL, json={
            "action": "validate_transition",
            "application_id": app.application_id,
            "target_state": "DIRECTOR_REVIEW",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert len(body["reasons"]) == 5

    def test_available_transitions(self, client, create_application, auth_headers):
        app = create_application(current_state="CONTROL_IN_PROGRESS")

        response = client.post(URL, json={
            "action": "get_available_transitions",
            "application_id": app.application_id,
        }, headers=auth_headers("control"))

        assert response.status_code == 200
        body = response.json()
        assert body["current_state"] == "CONTROL_IN_PROGRESS"
        assert [t["target_state"] for t in body["available_transitions"]] == [
            "TECHNICAL_REVIEW", "SOCIAL_REVIEW",
        ]

    def test_workflow_status(self, client, create_application):
        app = create_application(current_state="DIRECTOR_REVIEW")

        response = client.post(URL, json={
            "action": "get_workflow_status",
            "application_id": app.application_id,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["progress_percent"] == 75
        assert body["is_overdue"] is False
        assert body["history"] == []

    def test_sla_metrics(self, client, create_application):
        create_application(current_state="INTAKE_REVIEW")

        response = client.post(URL, json={"action": "get_sla_metrics"})

        assert response.status_code == 200
        body = response.json()
        assert body["total_in_pipeline"] == 1
        intake = next(s for s in body["states"] if s["state"] == "INTAKE_REVIEW")
        assert intake["current_load"] == 1


@pytest.mark.integration
class TestDecisionActions:
    def test_record_decision(self, client, create_application, auth_headers):
        app = create_application(current_state="MINISTER_DECISION")

        response = client.post(URL, json={
            "action": "record_decision",
            "application_id": app.application_id,
            "decision": "APPROVED",
            "notes": "Eligible",
            "approved_amount": "20000",
        }, headers=auth_headers("minister"))

        assert response.status_code == 200
        assert response.json()["to_state"] == "CLOSURE"

    def test_decision_without_notes(self, client, create_application, auth_headers):
        app = create_application(current_state="MINISTER_DECISION")

        response = client.post(URL, json={
            "action": "record_decision",
            "application_id": app.application_id,
            "decision": "REJECTED",
            "notes": " ",
        }, headers=auth_headers("minister"))

        assert response.status_code == 422
        assert response.json()["code"] == "MISSING_JUSTIFICATION"

    @pytest.mark.parametrize("amount", ["20000.005", "1000000000000000000.12", "-5"])
    def test_decision_amount_outside_column_bounds(self, client, create_application, auth_headers, amount):
        app = create_application(current_state="MINISTER_DECISION")

        response = client.post(URL, json={
            "action": "record_decision",
            "application_id": app.application_id,
            "decision": "APPROVED",
            "notes": "Eligible",
            "approved_amount": amount,
        }, headers=auth_headers("minister"))

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INVALID_COMMAND"
        assert any("approved_amount" in reason for reason in body["reasons"])
        assert client.get(f"/api/v1/applications/{app.application_id}").json()["current_state"] == "MINISTER_DECISION"

    def test_record_recommendation(self, client, create_application, auth_headers):
        app = create_application(current_state="DIRECTOR_REVIEW")

        response = client.post(URL, json={
            "action": "record_recommendation",
            "application_id": app.application_id,
            "recommendation": "REQUEST_MORE_INFO",
            "notes": "Need a new survey",
        }, headers=auth_headers("director"))

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"


@pytest.mark.integration
class TestAlertAndTaskActions:
    def test_scan_and_list_alerts(self, client, create_application):
        create_application(current_state="DRAFT", hours_in_state=500)

        scan = client.post(URL, json={"action": "scan_sla"})
        assert scan.status_code == 200
        assert scan.json()["total"] == 1

        listed = client.post(URL, json={
            "action": "get_alerts",
            "filters": {"resolved": False, "severity": "CRITICAL"},
        })
        assert listed.json()["total"] == 1

    def test_resolve_alert(self, client, create_alert, auth_headers):
        alert = create_alert()

        response = client.post(URL, json={
            "action": "resolve_alert",
            "alert_id": alert.alert_id,
        }, headers=auth_headers("staff", "staff_009"))

        assert response.status_code == 200
        assert response.json()["resolved_by"] == "staff_009"

    def test_resolve_unknown_alert(self, client):
        response = client.post(URL, json={"action": "resolve_alert", "alert_id": "alert_missing"})

        assert response.status_code == 404
        assert response.json()["code"] == "ALERT_NOT_FOUND"

    def test_resolve_all_requires_authority(self, client, create_alert, auth_headers):
        create_alert()

        refused = client.post(URL, json={"action": "resolve_all_alerts"}, headers=auth_headers("staff"))
        assert refused.status_code == 403

        allowed = client.post(URL, json={"action": "resolve_all_alerts"}, headers=auth_headers("director"))
        assert allowed.status_code == 200
        assert allowed.json() == {"resolved_count": 1}

    def test_tasks_follow_transitions(self, client, create_application):
        app = create_application()
        client.post(URL, json={
            "action": "transition_state",
            "application_id": app.application_id,
            "target_state": "INTAKE_REVIEW",
        })

        listed = client.post(URL, json={
            "action": "get_tasks",
            "filters": {"application_id": app.application_id},
        })
        tasks = listed.json()["tasks"]
        assert [t["title"] for t in tasks] == ["Review Application Intake"]

        completed = client.post(URL, json={
            "action": "complete_task",
            "task_id": tasks[0]["task_id"],
            "notes": "Checked",
        })
        assert completed.status_code == 200
        assert completed.json()["status"] == "COMPLETED"

    def test_complete_unknown_task(self, client):
        response = client.post(URL, json={"action": "complete_task", "task_id": "task_missing"})

        assert response.status_code == 404
        assert response.json()["code"] == "TASK_NOT_FOUND"
