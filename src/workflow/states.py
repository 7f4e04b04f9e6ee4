"""
Workflow state graph, role authority and SLA policy for subsidy applications
"""
from enum import Enum
from typing import Mapping, Optional


class ApplicationState(str, Enum):
    DRAFT = "DRAFT"
    INTAKE_REVIEW = "INTAKE_REVIEW"
    CONTROL_ASSIGN = "CONTROL_ASSIGN"
    VISIT_SCHEDULED = "VISIT_SCHEDULED"
    CONTROL_IN_PROGRESS = "CONTROL_IN_PROGRESS"
    TECHNICAL_REVIEW = "TECHNICAL_REVIEW"
    SOCIAL_REVIEW = "SOCIAL_REVIEW"
    DIRECTOR_REVIEW = "DIRECTOR_REVIEW"
    MINISTER_DECISION = "MINISTER_DECISION"
    CLOSURE = "CLOSURE"
    REJECTED = "REJECTED"


class Role(str, Enum):
    ADMIN = "admin"
    IT = "it"
    STAFF = "staff"
    FRONT_OFFICE = "front_office"
    CONTROL = "control"
    DIRECTOR = "director"
    MINISTER = "minister"


TERMINAL_STATES = frozenset({ApplicationState.CLOSURE, ApplicationState.REJECTED})

# States whose entry requires a written justification in the payload
DECISION_STATES = frozenset({
    ApplicationState.MINISTER_DECISION,
    ApplicationState.CLOSURE,
    ApplicationState.REJECTED,
})

# Forward edges. REJECTED is added from every non-terminal state below.
_FORWARD_EDGES: dict[ApplicationState, tuple[ApplicationState, ...]] = {
    ApplicationState.DRAFT: (ApplicationState.INTAKE_REVIEW,),
    ApplicationState.INTAKE_REVIEW: (ApplicationState.CONTROL_ASSIGN,),
    ApplicationState.CONTROL_ASSIGN: (ApplicationState.VISIT_SCHEDULED,),
    ApplicationState.VISIT_SCHEDULED: (ApplicationState.CONTROL_IN_PROGRESS,),
    ApplicationState.CONTROL_IN_PROGRESS: (
        ApplicationState.TECHNICAL_REVIEW,
        ApplicationState.SOCIAL_REVIEW,
    ),
    # Join point: both branches lead to DIRECTOR_REVIEW, whose gate
    # requires the technical AND social report.
    ApplicationState.TECHNICAL_REVIEW: (ApplicationState.DIRECTOR_REVIEW,),
    ApplicationState.SOCIAL_REVIEW: (ApplicationState.DIRECTOR_REVIEW,),
    ApplicationState.DIRECTOR_REVIEW: (ApplicationState.MINISTER_DECISION,),
    ApplicationState.MINISTER_DECISION: (ApplicationState.CLOSURE,),
    ApplicationState.CLOSURE: (),
    ApplicationState.REJECTED: (),
}

TRANSITIONS: Mapping[ApplicationState, frozenset[ApplicationState]] = {
    state: frozenset(
        targets + (() if state in TERMINAL_STATES else (ApplicationState.REJECTED,))
    )
    for state, targets in _FORWARD_EDGES.items()
}

_OPERATORS = frozenset({Role.ADMIN, Role.IT})

# Roles allowed to move an application INTO a state along a forward edge
ENTRY_ROLES: Mapping[ApplicationState, frozenset[Role]] = {
    ApplicationState.INTAKE_REVIEW: _OPERATORS | {Role.STAFF, Role.FRONT_OFFICE},
    ApplicationState.CONTROL_ASSIGN: _OPERATORS | {Role.STAFF, Role.CONTROL},
    ApplicationState.VISIT_SCHEDULED: _OPERATORS | {Role.CONTROL},
    ApplicationState.CONTROL_IN_PROGRESS: _OPERATORS | {Role.CONTROL},
    ApplicationState.TECHNICAL_REVIEW: _OPERATORS | {Role.STAFF, Role.CONTROL},
    ApplicationState.SOCIAL_REVIEW: _OPERATORS | {Role.STAFF, Role.CONTROL},
    ApplicationState.DIRECTOR_REVIEW: _OPERATORS | {Role.STAFF, Role.DIRECTOR},
    ApplicationState.MINISTER_DECISION: _OPERATORS | {Role.DIRECTOR},
    ApplicationState.CLOSURE: _OPERATORS | {Role.MINISTER},
}

# Rejection authority: director, minister and operators may reject from any
# non-terminal state; intake staff only while the case is in intake.
REJECTION_ROLES: frozenset[Role] = _OPERATORS | {Role.DIRECTOR, Role.MINISTER}
INTAKE_REJECTION_ROLES: frozenset[Role] = frozenset({Role.STAFF, Role.FRONT_OFFICE})
INTAKE_STATES = frozenset({ApplicationState.DRAFT, ApplicationState.INTAKE_REVIEW})

DIRECTOR_ROLES: frozenset[Role] = _OPERATORS | {Role.DIRECTOR}
MINISTER_ROLES: frozenset[Role] = _OPERATORS | {Role.MINISTER}
ALERT_ADMIN_ROLES: frozenset[Role] = _OPERATORS | {Role.DIRECTOR}

# Who may write the artifact signals the director review gate reads
DOCUMENT_ROLES: frozenset[Role] = _OPERATORS | {Role.STAFF, Role.FRONT_OFFICE}
CONTROL_VISIT_ROLES: frozenset[Role] = _OPERATORS | {Role.CONTROL}
REPORT_ROLES: frozenset[Role] = _OPERATORS | {Role.STAFF, Role.CONTROL}

# Maximum dwell time per state, in hours
DEFAULT_SLA_HOURS: Mapping[ApplicationState, int] = {
    ApplicationState.DRAFT: 72,
    ApplicationState.INTAKE_REVIEW: 48,
    ApplicationState.CONTROL_ASSIGN: 24,
    ApplicationState.VISIT_SCHEDULED: 168,
    ApplicationState.CONTROL_IN_PROGRESS: 72,
    ApplicationState.TECHNICAL_REVIEW: 120,
    ApplicationState.SOCIAL_REVIEW: 120,
    ApplicationState.DIRECTOR_REVIEW: 168,
    ApplicationState.MINISTER_DECISION: 240,
}


class SlaPolicyError(ValueError):
    """Raised when the configured SLA policy table is unusable"""


def is_terminal(state: ApplicationState) -> bool:
    return state in TERMINAL_STATES


def is_legal_edge(current: ApplicationState, target: ApplicationState) -> bool:
    return target in TRANSITIONS[current]


def can_enter(
    role: Optional[str],
    current: ApplicationState,
    target: ApplicationState,
) -> bool:
    """Role check for one edge of the graph"""
    try:
        role_value = Role(role)
    except ValueError:
        return False

    if target == ApplicationState.REJECTED:
        if role_value in REJECTION_ROLES:
            return True
        return current in INTAKE_STATES and role_value in INTAKE_REJECTION_ROLES

    return role_value in ENTRY_ROLES.get(target, frozenset())


def has_authority(role: Optional[str], allowed: frozenset[Role]) -> bool:
    try:
        return Role(role) in allowed
    except ValueError:
        return False


def build_sla_policy(overrides: Optional[Mapping[str, int]] = None) -> dict[ApplicationState, int]:
    """
    Merge configured overrides into the default SLA table

    Raises:
        SlaPolicyError: override names an unknown or terminal state, or a
            non-positive number of hours
    """
    policy = dict(DEFAULT_SLA_HOURS)
    for name, hours in (overrides or {}).items():
        try:
            state = ApplicationState(name)
        except ValueError:
            raise SlaPolicyError(f"Unknown state in SLA policy: {name}")
        if state in TERMINAL_STATES:
            raise SlaPolicyError(f"Terminal state {name} cannot carry an SLA")
        if hours <= 0:
            raise SlaPolicyError(f"SLA for {name} must be positive, got {hours}")
        policy[state] = hours
    return policy


def format_state_name(state: ApplicationState) -> str:
    """DIRECTOR_REVIEW -> 'Director Review'"""
    return " ".join(word.capitalize() for word in state.value.split("_"))
