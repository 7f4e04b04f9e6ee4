"""
Pytest configuration and fixtures for the workflow engine test suite
"""
import os

# Settings are read at import time; configure before importing src
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["AUTH_REQUIRED"] = "false"
os.environ["DEV_ACTOR_ID"] = "dev_admin"
os.environ["DEV_ACTOR_ROLE"] = "admin"
os.environ["SLA_MONITOR_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import uuid
import pytest
from datetime import timedelta
from decimal import Decimal
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from src.core.auth import Actor
from src.core.database import get_db
from src.db.models import (
    Application,
    ApplicationDocument,
    AssessmentReport,
    Base,
    ControlPhoto,
    ControlVisit,
    WorkflowAlert,
)
from src.main import app
from src.utils.clock import utcnow
from src.utils.dev_token import generate_dev_token
from src.workflow.gates import REQUIRED_PHOTO_CATEGORIES


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create an in-memory SQLite database for testing

    Each test gets a fresh database with all tables created.
    Automatically cleans up after the test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(test_db: Session) -> Generator[TestClient, None, None]:
    """
    Create FastAPI test client with the test database injected
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============================================================================
# ACTORS
# ============================================================================

@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin_001", role="admin")


@pytest.fixture
def staff() -> Actor:
    return Actor(user_id="staff_001", role="staff")


@pytest.fixture
def control() -> Actor:
    return Actor(user_id="control_001", role="control")


@pytest.fixture
def director() -> Actor:
    return Actor(user_id="director_001", role="director")


@pytest.fixture
def minister() -> Actor:
    return Actor(user_id="minister_001", role="minister")


@pytest.fixture
def auth_headers():
    """
    Bearer headers for a role

    Usage:
        headers = auth_headers("director")
    """
    def _headers(role: str, user_id: str = None) -> dict[str, str]:
        token = generate_dev_token(user_id=user_id or f"{role}_001", role=role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# DATABASE FACTORY FIXTURES
# ============================================================================

@pytest.fixture
def create_application(test_db: Session):
    """
    Factory fixture for creating Application records directly in a state

    Usage:
        app = create_application(current_state="TECHNICAL_REVIEW", hours_in_state=200)
    """
    def _create_application(hours_in_state: float = 0, **kwargs) -> Application:
        entered_at = utcnow() - timedelta(hours=hours_in_state)
        state = kwargs.get("current_state", "DRAFT")
        defaults = {
            "application_id": f"app_{uuid.uuid4().hex[:12]}",
            "application_number": f"APP-2026-{uuid.uuid4().hex[:6].upper()}",
            "applicant_name": "Jane Applicant",
            "property_address": "12 Harbour Road",
            "requested_amount": Decimal("25000.00"),
            "priority_level": 1,
            "current_state": state,
            "state_entered_at": entered_at,
            "created_by": "staff_001",
            "created_at": entered_at,
            "updated_at": entered_at,
        }
        if state in ("CLOSURE", "REJECTED"):
            defaults["completed_at"] = entered_at
        defaults.update(kwargs)

        application = Application(**defaults)
        test_db.add(application)
        test_db.commit()
        test_db.refresh(application)
        return application

    return _create_application


@pytest.fixture
def add_photos(test_db: Session):
    """Add one control photo per category"""
    def _add_photos(application_id: str, categories=REQUIRED_PHOTO_CATEGORIES) -> None:
        for category in categories:
            test_db.add(ControlPhoto(
                photo_id=f"photo_{uuid.uuid4().hex[:12]}",
                application_id=application_id,
                photo_category=category,
                captured_by="control_001",
                captured_at=utcnow(),
            ))
        test_db.commit()

    return _add_photos


@pytest.fixture
def add_report(test_db: Session):
    """Add a TECHNICAL or SOCIAL report, submitted unless told otherwise"""
    def _add_report(application_id: str, report_type: str, submitted: bool = True) -> AssessmentReport:
        report = AssessmentReport(
            report_id=f"rpt_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            report_type=report_type,
            conclusion="Property meets the structural criteria",
            recommendations="Proceed with the subsidy",
            submitted_by="staff_001" if submitted else None,
            submitted_at=utcnow() if submitted else None,
        )
        test_db.add(report)
        test_db.commit()
        return report

    return _add_report


@pytest.fixture
def add_document(test_db: Session):
    def _add_document(application_id: str, name: str = "Proof of income", status: str = "VERIFIED",
                      is_required: bool = True) -> ApplicationDocument:
        document = ApplicationDocument(
            document_id=f"doc_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            document_type="INCOME",
            document_name=name,
            is_required=is_required,
            verification_status=status,
        )
        test_db.add(document)
        test_db.commit()
        return document

    return _add_document


@pytest.fixture
def complete_visit(test_db: Session):
    def _complete_visit(application_id: str, visit_status: str = "COMPLETED") -> ControlVisit:
        visit = ControlVisit(
            visit_id=f"visit_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            visit_status=visit_status,
            inspector_id="control_001",
            actual_date=utcnow() if visit_status == "COMPLETED" else None,
        )
        test_db.add(visit)
        test_db.commit()
        return visit

    return _complete_visit


@pytest.fixture
def complete_artifacts(add_photos, add_report, complete_visit):
    """Everything the director review gate requires"""
    def _complete(application_id: str) -> None:
        complete_visit(application_id)
        add_photos(application_id)
        add_report(application_id, "TECHNICAL")
        add_report(application_id, "SOCIAL")

    return _complete


@pytest.fixture
def create_alert(test_db: Session):
    def _create_alert(**kwargs) -> WorkflowAlert:
        alert_id = f"alert_{uuid.uuid4().hex[:12]}"
        defaults = {
            "alert_id": alert_id,
            "alert_type": "ERROR",
            "severity": "MEDIUM",
            "message": "Test alert",
            "dedup_key": f"ERROR:{alert_id}:-",
            "resolved": False,
            "created_at": utcnow(),
        }
        defaults.update(kwargs)

        alert = WorkflowAlert(**defaults)
        test_db.add(alert)
        test_db.commit()
        test_db.refresh(alert)
        return alert

    return _create_alert


# ============================================================================
# CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
