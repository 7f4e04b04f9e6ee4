"""
Workflow performance metrics for the monitoring dashboard
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..db.models import Application, ApplicationStep
from ..utils.clock import as_utc, utcnow
from ..workflow.states import (
    DEFAULT_SLA_HOURS,
    ApplicationState,
    SlaPolicyError,
    TERMINAL_STATES,
    build_sla_policy,
    format_state_name,
)
from ..core.config import settings

THROUGHPUT_WINDOW = timedelta(days=7)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _percent(part: int, whole: int) -> float:
    return round(part * 100 / whole, 1) if whole else 100.0


def performance_metrics(db: Session, now: Optional[datetime] = None) -> dict[str, Any]:
    """
    Per-state load, dwell time, SLA compliance and throughput

    Dwell time is measured from COMPLETED steps leaving a state
    (completed_at - started_at). Compliance is the share of applications
    currently in a state that are still within its SLA.
    """
    now = as_utc(now) or utcnow()
    try:
        policy = build_sla_policy(settings.SLA_POLICY_OVERRIDES)
    except SlaPolicyError:
        policy = dict(DEFAULT_SLA_HOURS)

    in_flight = (
        db.query(Application)
        .filter(Application.current_state.notin_([s.value for s in TERMINAL_STATES]))
        .all()
    )
    load: dict[str, int] = defaultdict(int)
    within_sla: dict[str, int] = defaultdict(int)
    for application in in_flight:
        state = ApplicationState(application.current_state)
        load[state.value] += 1
        hours_in_state = _hours(now - as_utc(application.state_entered_at))
        if hours_in_state <= policy.get(state, float("inf")):
            within_sla[state.value] += 1

    dwell: dict[str, list[float]] = defaultdict(list)
    throughput: dict[str, int] = defaultdict(int)
    completed_steps = (
        db.query(ApplicationStep)
        .filter(
            ApplicationStep.status == "COMPLETED",
            ApplicationStep.from_state.isnot(None),
        )
        .all()
    )
    for step in completed_steps:
        completed_at = as_utc(step.completed_at)
        started_at = as_utc(step.started_at)
        if started_at is not None:
            dwell[step.from_state].append(_hours(completed_at - started_at))
        if now - completed_at <= THROUGHPUT_WINDOW:
            throughput[step.from_state] += 1

    states = []
    for state in ApplicationState:
        if state in TERMINAL_STATES:
            continue
        samples = dwell[state.value]
        states.append({
            "state": state.value,
            "display_name": format_state_name(state),
            "sla_hours": policy.get(state),
            "current_load": load[state.value],
            "avg_processing_hours": round(sum(samples) / len(samples), 1) if samples else 0.0,
            "sla_compliance": _percent(within_sla[state.value], load[state.value]),
            "throughput": throughput[state.value],
        })

    finished = (
        db.query(Application)
        .filter(
            Application.completed_at.isnot(None),
            Application.submitted_at.isnot(None),
        )
        .all()
    )
    durations = [
        _hours(as_utc(app.completed_at) - as_utc(app.submitted_at)) / 24
        for app in finished
    ]

    return {
        "generated_at": now,
        "states": states,
        "total_in_pipeline": len(in_flight),
        "avg_processing_days": round(sum(durations) / len(durations), 1) if durations else 0.0,
        "sla_compliance": _percent(sum(within_sla.values()), len(in_flight)),
    }
