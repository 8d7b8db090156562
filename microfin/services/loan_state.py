from __future__ import annotations

import logging

from microfin.schemas.loan import LoanAction, LoanStatus
from microfin.services.audit import record_audit_log
from microfin.services.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


APPROVED_STATUSES = frozenset({LoanStatus.APPROVED, LoanStatus.APPROVED_WITH_CONDITIONS})
APPRAISAL_STATUSES = frozenset({LoanStatus.UNDER_APPRAISAL, LoanStatus.PENDING_APPROVAL})

# statuses in which a loan must carry an approved amount
FUNDED_STATUSES = frozenset(
    {
        LoanStatus.APPROVED,
        LoanStatus.APPROVED_WITH_CONDITIONS,
        LoanStatus.DISBURSED,
        LoanStatus.ACTIVE,
        LoanStatus.OVERDUE,
        LoanStatus.CLOSED,
    }
)

# statuses in which a repayment schedule exists
SCHEDULED_STATUSES = frozenset(
    {LoanStatus.DISBURSED, LoanStatus.ACTIVE, LoanStatus.OVERDUE, LoanStatus.CLOSED}
)

TERMINAL_STATUSES = frozenset({LoanStatus.REJECTED, LoanStatus.CLOSED})


# action -> statuses it may start from. None as a target means the status is
# decided by the action itself (approval decisions) or left unchanged.
TRANSITIONS: dict[LoanAction, tuple[frozenset[LoanStatus], LoanStatus | None]] = {
    LoanAction.SUBMIT: (frozenset({LoanStatus.DRAFT}), LoanStatus.APPLICATION_SUBMITTED),
    LoanAction.CREATE_APPRAISAL: (
        frozenset({LoanStatus.APPLICATION_SUBMITTED}),
        LoanStatus.UNDER_APPRAISAL,
    ),
    LoanAction.UPDATE_APPRAISAL: (APPRAISAL_STATUSES, None),
    LoanAction.COMPLETE_APPRAISAL: (APPRAISAL_STATUSES, LoanStatus.PENDING_APPROVAL),
    LoanAction.APPROVE: (APPRAISAL_STATUSES, None),
    LoanAction.CREATE_DISBURSEMENT: (APPROVED_STATUSES, None),
    LoanAction.VERIFY_DISBURSEMENT: (APPROVED_STATUSES, None),
    LoanAction.COMPLETE_DISBURSEMENT: (APPROVED_STATUSES, LoanStatus.DISBURSED),
    LoanAction.ACTIVATE: (frozenset({LoanStatus.DISBURSED}), LoanStatus.ACTIVE),
    LoanAction.CLOSE: (frozenset({LoanStatus.ACTIVE, LoanStatus.DISBURSED}), LoanStatus.CLOSED),
}


def _as_status(value) -> LoanStatus:
    return value if isinstance(value, LoanStatus) else LoanStatus(value)


def is_allowed(current_status, action: LoanAction | str) -> bool:
    allowed_from, _ = TRANSITIONS[LoanAction(action)]
    return _as_status(current_status) in allowed_from


def assert_transition(current_status, action: LoanAction | str) -> LoanStatus | None:
    """Return the target status of ``action`` or raise InvalidTransitionError."""
    action = LoanAction(action)
    if not is_allowed(current_status, action):
        raise InvalidTransitionError.for_action(_as_status(current_status), action.value)
    return TRANSITIONS[action][1]


def allowed_actions(current_status) -> list[LoanAction]:
    status = _as_status(current_status)
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]


def apply_transition(db, loan, action: LoanAction | str, target: LoanStatus, *, actor_id=None, **extra) -> None:
    """Move ``loan`` to ``target`` and stage the matching audit row."""
    action = LoanAction(action)
    old_status = loan.status
    loan.status = LoanStatus(target).value
    record_audit_log(
        db,
        actor_id=actor_id,
        action=f"loan.{action.value}",
        resource_type="loan",
        resource_id=loan.id,
        old_value={"status": old_status},
        new_value={"status": loan.status, **extra},
    )
    logger.info(
        "Loan %s moved %s -> %s via %s",
        loan.loan_id,
        old_status,
        loan.status,
        action.value,
        extra={"loan_id": loan.loan_id, "loan_status": loan.status},
    )
