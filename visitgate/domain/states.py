"""Status enums and the transition tables that govern them.

Every status change in the service goes through :func:`ensure_transition`;
a move that is not listed here is rejected with a ConflictError.

  PreApproval:  PENDING -> APPROVED | REJECTED | EXPIRED
                APPROVED -> USED
  Visit:        SCHEDULED -> CHECKED_IN -> COMPLETED
                SCHEDULED -> CANCELLED
  Visit approval mirrors the pre-approval outcome:
                PENDING -> APPROVED | REJECTED
"""

from __future__ import annotations

from enum import Enum

from visitgate.core.exceptions import ConflictError


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    BUILDING_ADMIN = "BUILDING_ADMIN"
    SECURITY = "SECURITY"
    RESIDENT = "RESIDENT"


# Roles allowed to approve, reject, check in and check out.
STAFF_ROLES = frozenset({Role.SUPER_ADMIN, Role.BUILDING_ADMIN, Role.SECURITY})


class PreApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    USED = "USED"


class VisitStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VisitType(str, Enum):
    PRE_APPROVED = "PRE_APPROVED"


PRE_APPROVAL_TRANSITIONS: dict[PreApprovalStatus, frozenset[PreApprovalStatus]] = {
    PreApprovalStatus.PENDING: frozenset(
        {PreApprovalStatus.APPROVED, PreApprovalStatus.REJECTED, PreApprovalStatus.EXPIRED}
    ),
    PreApprovalStatus.APPROVED: frozenset({PreApprovalStatus.USED}),
    PreApprovalStatus.REJECTED: frozenset(),
    PreApprovalStatus.EXPIRED: frozenset(),
    PreApprovalStatus.USED: frozenset(),
}

VISIT_TRANSITIONS: dict[VisitStatus, frozenset[VisitStatus]] = {
    VisitStatus.SCHEDULED: frozenset({VisitStatus.CHECKED_IN, VisitStatus.CANCELLED}),
    VisitStatus.CHECKED_IN: frozenset({VisitStatus.COMPLETED}),
    VisitStatus.COMPLETED: frozenset(),
    VisitStatus.CANCELLED: frozenset(),
}

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

_TABLES = {
    PreApprovalStatus: ("Pre-approval", PRE_APPROVAL_TRANSITIONS),
    VisitStatus: ("Visit", VISIT_TRANSITIONS),
    ApprovalStatus: ("Visit approval", APPROVAL_TRANSITIONS),
}


def can_transition(current: Enum, target: Enum) -> bool:
    _, table = _TABLES[type(current)]
    return target in table.get(current, frozenset())


def ensure_transition(current: Enum, target: Enum) -> None:
    """Raise ConflictError unless ``current -> target`` is in the transition table."""
    if type(current) is not type(target):
        raise TypeError(f"Cannot compare {type(current).__name__} with {type(target).__name__}")
    if not can_transition(current, target):
        label, _ = _TABLES[type(current)]
        raise ConflictError(
            f"{label} cannot move from {current.value.lower()} to {target.value.lower()}"
        )


def is_terminal(status: VisitStatus) -> bool:
    return not VISIT_TRANSITIONS[status]
