import pytest

from visitgate.core.exceptions import ConflictError
from visitgate.domain.states import (
    ApprovalStatus,
    PreApprovalStatus,
    VisitStatus,
    can_transition,
    ensure_transition,
    is_terminal,
)


@pytest.mark.parametrize(
    "current,target",
    [
        (PreApprovalStatus.PENDING, PreApprovalStatus.APPROVED),
        (PreApprovalStatus.PENDING, PreApprovalStatus.REJECTED),
        (PreApprovalStatus.PENDING, PreApprovalStatus.EXPIRED),
        (PreApprovalStatus.APPROVED, PreApprovalStatus.USED),
        (VisitStatus.SCHEDULED, VisitStatus.CHECKED_IN),
        (VisitStatus.SCHEDULED, VisitStatus.CANCELLED),
        (VisitStatus.CHECKED_IN, VisitStatus.COMPLETED),
        (ApprovalStatus.PENDING, ApprovalStatus.APPROVED),
        (ApprovalStatus.PENDING, ApprovalStatus.REJECTED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (PreApprovalStatus.APPROVED, PreApprovalStatus.APPROVED),
        (PreApprovalStatus.REJECTED, PreApprovalStatus.APPROVED),
        (PreApprovalStatus.USED, PreApprovalStatus.APPROVED),
        (PreApprovalStatus.PENDING, PreApprovalStatus.USED),
        (VisitStatus.SCHEDULED, VisitStatus.COMPLETED),
        (VisitStatus.COMPLETED, VisitStatus.CHECKED_IN),
        (VisitStatus.CANCELLED, VisitStatus.SCHEDULED),
        (VisitStatus.CHECKED_IN, VisitStatus.CANCELLED),
    ],
)
def test_forbidden_transitions_raise_conflict(current, target):
    assert not can_transition(current, target)
    with pytest.raises(ConflictError):
        ensure_transition(current, target)


def test_conflict_message_names_both_states():
    with pytest.raises(ConflictError) as exc_info:
        ensure_transition(VisitStatus.SCHEDULED, VisitStatus.COMPLETED)
    assert exc_info.value.message == "Visit cannot move from scheduled to completed"
    assert exc_info.value.status_code == 409


def test_mixing_enums_is_a_programming_error():
    with pytest.raises(TypeError):
        ensure_transition(VisitStatus.SCHEDULED, PreApprovalStatus.APPROVED)


def test_terminal_visit_states():
    assert is_terminal(VisitStatus.COMPLETED)
    assert is_terminal(VisitStatus.CANCELLED)
    assert not is_terminal(VisitStatus.SCHEDULED)
    assert not is_terminal(VisitStatus.CHECKED_IN)
