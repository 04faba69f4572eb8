"""
Entity lifecycle state machine.

Pure function of (entity, action) -> new entity. The transition table is
data: any (status, action) pair not listed is illegal and raises
IllegalTransitionError, leaving the caller's entity untouched.

Draft -> Pending Screening -> {EDD Review | Approved | Peer Review}, then
queue decisions (approve, reject, waiver, periodic review, off-boarding)
move the entity onward. Rejected and Off-boarded are terminal.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from exceptions import IllegalTransitionError
from logger import get_logger
from models import ApplicationStatus, ApprovedBy, EntityProfile, FinalRiskDetermination, RiskLevel
from utilities.reference_data import REVIEW_INTERVAL_YEARS

logger = get_logger(__name__)

S = ApplicationStatus


class LifecycleAction(str, Enum):
    SUBMIT_FOR_SCREENING = "submit_for_screening"
    FINALIZE_SCREENING = "finalize_screening"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_WAIVER = "request_waiver"
    GRANT_WAIVER = "grant_waiver"
    DENY_WAIVER = "deny_waiver"
    CONFIRM_REVIEW = "confirm_review"
    RETRIGGER_EDD = "retrigger_edd"
    TRIGGER_PERIODIC_REVIEW = "trigger_periodic_review"
    REQUEST_OFFBOARDING = "request_offboarding"
    CONFIRM_OFFBOARDING = "confirm_offboarding"


A = LifecycleAction

# (from status, action) -> permitted target statuses.
# Multi-target rows are routed by the final risk determination.
TRANSITIONS: dict[tuple[ApplicationStatus, LifecycleAction], tuple[ApplicationStatus, ...]] = {
    (S.DRAFT, A.SUBMIT_FOR_SCREENING): (S.PENDING_SCREENING,),
    (S.PENDING_SCREENING, A.FINALIZE_SCREENING): (S.EDD_REVIEW, S.APPROVED, S.PEER_REVIEW),

    (S.EDD_REVIEW, A.APPROVE): (S.APPROVED,),
    (S.EDD_REVIEW, A.REJECT): (S.REJECTED,),
    (S.EDD_REVIEW, A.REQUEST_WAIVER): (S.WAIVER_REQUESTED,),

    (S.PEER_REVIEW, A.APPROVE): (S.APPROVED,),
    (S.PEER_REVIEW, A.REJECT): (S.REJECTED,),

    (S.WAIVER_REQUESTED, A.GRANT_WAIVER): (S.APPROVED,),
    (S.WAIVER_REQUESTED, A.DENY_WAIVER): (S.REJECTED,),

    (S.PERIODIC_REVIEW, A.CONFIRM_REVIEW): (S.APPROVED,),
    (S.PERIODIC_REVIEW, A.RETRIGGER_EDD): (S.EDD_REVIEW,),
    (S.PERIODIC_REVIEW, A.REJECT): (S.REJECTED,),

    (S.OFFBOARDING_REQUESTED, A.CONFIRM_OFFBOARDING): (S.OFFBOARDED,),

    (S.APPROVED, A.TRIGGER_PERIODIC_REVIEW): (S.PERIODIC_REVIEW,),
    (S.APPROVED, A.REQUEST_OFFBOARDING): (S.OFFBOARDING_REQUESTED,),
}

TERMINAL_STATUSES = frozenset({S.REJECTED, S.OFFBOARDED})

# Actions whose free-text reason is mandatory, and the field it is stored in
_REASON_FIELDS = {
    A.REQUEST_WAIVER: "waiver_reason",
    A.TRIGGER_PERIODIC_REVIEW: "review_trigger",
    A.REQUEST_OFFBOARDING: "offboarding_reason",
}

_CLEARS_APPROVAL = {A.REJECT, A.DENY_WAIVER, A.RETRIGGER_EDD}


def allowed_actions(status: ApplicationStatus) -> list[LifecycleAction]:
    """Actions defined for a status, in table order."""
    return [action for (from_status, action) in TRANSITIONS if from_status == status]


def initial_status(
    determination: FinalRiskDetermination,
    force_peer_review: bool = False,
) -> tuple[ApplicationStatus, Optional[ApprovedBy]]:
    """
    Queue an entity enters once screening is finalised.

    High risk always goes to EDD; a clean determination is auto-approved
    unless the operator forces a peer review; everything else is peer reviewed.
    """
    if determination.risk_level == RiskLevel.HIGH:
        return S.EDD_REVIEW, None
    if determination.is_clean and not force_peer_review:
        return S.APPROVED, ApprovedBy.AUTOMATED_AGENT
    return S.PEER_REVIEW, None


def next_review_date(risk_level: RiskLevel, now: datetime) -> datetime:
    """Scheduled periodic review date for an approval made at `now`."""
    years = REVIEW_INTERVAL_YEARS[risk_level.value]
    try:
        return now.replace(year=now.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return now.replace(year=now.year + years, day=28)


def apply_transition(
    entity: EntityProfile,
    action: LifecycleAction,
    *,
    reason: Optional[str] = None,
    determination: Optional[FinalRiskDetermination] = None,
    force_peer_review: bool = False,
    now: Optional[datetime] = None,
) -> EntityProfile:
    """
    Apply one lifecycle action.

    Args:
        entity: Current entity (not modified)
        action: Requested action
        reason: Free text, required for waiver, periodic review and off-boarding
        determination: Final risk determination, required for finalize_screening
        force_peer_review: Route a clean determination to Peer Review instead of auto-approval
        now: Clock override

    Returns:
        New EntityProfile in the target status

    Raises:
        IllegalTransitionError: action not defined for the entity's status
        ValueError: missing reason or determination
    """
    action = LifecycleAction(action)
    targets = TRANSITIONS.get((entity.status, action))
    if targets is None:
        logger.warning(f"Illegal transition for {entity.id}: {action.value} from {entity.status.value}")
        raise IllegalTransitionError(entity.status, action, entity.id)

    now = now or datetime.now()
    update: dict = {}

    if action in _REASON_FIELDS:
        if not reason or not reason.strip():
            raise ValueError(f"Action '{action.value}' requires a reason")
        update[_REASON_FIELDS[action]] = reason.strip()

    if action == A.FINALIZE_SCREENING:
        if determination is None:
            raise ValueError("finalize_screening requires a final risk determination")
        target, approved_by = initial_status(determination, force_peer_review)
        update.update(
            risk_level=determination.risk_level,
            risk_score=determination.risk_score,
            approved_by=approved_by,
        )
    else:
        target = targets[0]
        if target == S.APPROVED:
            update["approved_by"] = ApprovedBy.ANALYST
        elif action in _CLEARS_APPROVAL:
            update["approved_by"] = None

    if action == A.CONFIRM_REVIEW:
        update["last_review_date"] = now
    if target == S.APPROVED:
        level = update.get("risk_level", entity.risk_level)
        update["next_review_date"] = next_review_date(level, now)

    update["status"] = target
    logger.info(f"{entity.id}: {entity.status.value} -> {target.value} ({action.value})")
    return entity.model_copy(update=update)
