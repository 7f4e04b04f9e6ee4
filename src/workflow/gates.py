"""
Gate evaluation for forward transitions

The evaluator is pure over an ArtifactSnapshot: it never touches the
database. `evaluate_application` is the thin loader that builds a snapshot
from the artifact signal tables inside the caller's transaction.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.models import ApplicationDocument, AssessmentReport, ControlPhoto, ControlVisit
from .states import ApplicationState


class ReportStatus(str, Enum):
    MISSING = "missing"
    INCOMPLETE = "incomplete"  # Saved but lacking conclusion/recommendations or not submitted
    SUBMITTED = "submitted"


REQUIRED_PHOTO_CATEGORIES = ("EXTERIOR_FRONT", "EXTERIOR_BACK", "INTERIOR_MAIN", "UTILITIES")


@dataclass(frozen=True)
class GateRequirementSet:
    """Checklist that must hold before entering a state"""

    documents_verified: bool = False
    control_visit_completed: bool = False
    technical_report: bool = False
    social_report: bool = False
    required_photo_categories: tuple[str, ...] = ()
    min_photo_count: int = 0

    def describe(self) -> list[str]:
        items = []
        if self.documents_verified:
            items.append("All required documents verified")
        if self.control_visit_completed:
            items.append("Control visit completed")
        if self.min_photo_count:
            items.append(f"Minimum {self.min_photo_count} control photos uploaded")
        if self.required_photo_categories:
            items.append(
                "Photos for each required category: " + ", ".join(self.required_photo_categories)
            )
        if self.technical_report:
            items.append("Technical report submitted")
        if self.social_report:
            items.append("Social report submitted")
        return items


def build_gate_requirements(min_photos: int) -> dict[ApplicationState, GateRequirementSet]:
    return {
        ApplicationState.DIRECTOR_REVIEW: GateRequirementSet(
            documents_verified=True,
            control_visit_completed=True,
            technical_report=True,
            social_report=True,
            required_photo_categories=REQUIRED_PHOTO_CATEGORIES,
            min_photo_count=min_photos,
        ),
    }


# Payload-level requirements enforced by the engine, listed for the UI
_PAYLOAD_REQUIREMENTS: Mapping[ApplicationState, tuple[str, ...]] = {
    ApplicationState.MINISTER_DECISION: ("Director recommendation provided",),
    ApplicationState.CLOSURE: ("Ministerial decision notes", "Approved amount"),
    ApplicationState.REJECTED: ("Rejection justification",),
}


@dataclass(frozen=True)
class ArtifactSnapshot:
    """Completion signals for one application at one point in time"""

    unverified_documents: tuple[str, ...] = ()
    photo_counts: Mapping[str, int] = field(default_factory=dict)
    technical_report: ReportStatus = ReportStatus.MISSING
    social_report: ReportStatus = ReportStatus.MISSING
    control_visit_completed: bool = False

    @property
    def total_photos(self) -> int:
        return sum(self.photo_counts.values())


@dataclass(frozen=True)
class GateResult:
    allowed: bool
    reasons: list[str]


def _report_reasons(label: str, status: ReportStatus) -> list[str]:
    if status == ReportStatus.MISSING:
        return [f"{label} report has not been submitted"]
    if status == ReportStatus.INCOMPLETE:
        return [f"{label} report must be submitted with conclusion and recommendations"]
    return []


class GateEvaluator:
    """Table-driven gate checks per target state"""

    def __init__(self, requirements: Optional[Mapping[ApplicationState, GateRequirementSet]] = None):
        self.requirements = (
            dict(requirements) if requirements is not None
            else build_gate_requirements(settings.MIN_CONTROL_PHOTOS)
        )

    def requirements_for(self, target: ApplicationState) -> list[str]:
        """Human-readable checklist for a target state"""
        items = []
        gate = self.requirements.get(target)
        if gate:
            items.extend(gate.describe())
        items.extend(_PAYLOAD_REQUIREMENTS.get(target, ()))
        return items

    def evaluate(self, snapshot: ArtifactSnapshot, target: ApplicationState) -> GateResult:
        """
        Check a snapshot against the gate for `target`

        All failures are collected so staff can remediate in one pass.
        States without a gate pass.
        """
        gate = self.requirements.get(target)
        if gate is None:
            return GateResult(allowed=True, reasons=[])

        reasons: list[str] = []

        if gate.documents_verified and snapshot.unverified_documents:
            reasons.append(
                "Required documents not verified: " + ", ".join(snapshot.unverified_documents)
            )

        if gate.control_visit_completed and not snapshot.control_visit_completed:
            reasons.append("Control visit must be completed before director review")

        if gate.technical_report:
            reasons.extend(_report_reasons("Technical", snapshot.technical_report))
        if gate.social_report:
            reasons.extend(_report_reasons("Social", snapshot.social_report))

        missing_categories = [
            category for category in gate.required_photo_categories
            if snapshot.photo_counts.get(category, 0) < 1
        ]
        if missing_categories:
            reasons.append("Missing required photo categories: " + ", ".join(missing_categories))

        if snapshot.total_photos < gate.min_photo_count:
            reasons.append(
                f"Minimum {gate.min_photo_count} photos required from control visit "
                f"(currently {snapshot.total_photos})"
            )

        return GateResult(allowed=not reasons, reasons=reasons)

    def evaluate_application(
        self,
        db: Session,
        application_id: str,
        target: ApplicationState,
    ) -> GateResult:
        if target not in self.requirements:
            return GateResult(allowed=True, reasons=[])
        return self.evaluate(load_artifact_snapshot(db, application_id), target)


def _report_status(report: Optional[AssessmentReport]) -> ReportStatus:
    if report is None:
        return ReportStatus.MISSING
    if report.submitted_at and report.conclusion and report.recommendations:
        return ReportStatus.SUBMITTED
    return ReportStatus.INCOMPLETE


def load_artifact_snapshot(db: Session, application_id: str) -> ArtifactSnapshot:
    """Read completion signals for an application (no file bytes)"""
    unverified = (
        db.query(ApplicationDocument.document_name)
        .filter(
            ApplicationDocument.application_id == application_id,
            ApplicationDocument.is_required.is_(True),
            ApplicationDocument.verification_status != "VERIFIED",
        )
        .order_by(ApplicationDocument.document_name)
        .all()
    )

    photo_rows = (
        db.query(ControlPhoto.photo_category, func.count(ControlPhoto.photo_id))
        .filter(ControlPhoto.application_id == application_id)
        .group_by(ControlPhoto.photo_category)
        .all()
    )

    visit_status = (
        db.query(ControlVisit.visit_status)
        .filter(ControlVisit.application_id == application_id)
        .scalar()
    )

    reports = {
        report.report_type: report
        for report in db.query(AssessmentReport).filter_by(application_id=application_id).all()
    }

    return ArtifactSnapshot(
        unverified_documents=tuple(name for (name,) in unverified),
        photo_counts={category: count for category, count in photo_rows},
        technical_report=_report_status(reports.get("TECHNICAL")),
        social_report=_report_status(reports.get("SOCIAL")),
        control_visit_completed=visit_status == "COMPLETED",
    )


# Singleton
gate_evaluator = GateEvaluator()
