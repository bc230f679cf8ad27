import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from core.errors import ForbiddenError, ValidationError
from core.roles import Actor, require_manager
from models.visit import Visit

logger = logging.getLogger(__name__)


# Manager review of a visit. Exactly one of these holds at a time; on the row it
# is stored as approved_by_manager_id / approved_at / flagged_by_manager_id.


@dataclass(frozen=True)
class Unreviewed:
    pass


@dataclass(frozen=True)
class Approved:
    by: str
    at: Optional[datetime]


@dataclass(frozen=True)
class Flagged:
    by: str


ReviewState = Union[Unreviewed, Approved, Flagged]


def review_state_of(visit: Visit) -> ReviewState:
    if visit.approved_by_manager_id:
        return Approved(by=visit.approved_by_manager_id, at=visit.approved_at)
    if visit.flagged_by_manager_id:
        return Flagged(by=visit.flagged_by_manager_id)
    return Unreviewed()


def review_columns(state: ReviewState) -> dict:
    if isinstance(state, Approved):
        return {
            "approved_by_manager_id": state.by,
            "approved_at": state.at,
            "flagged_by_manager_id": None,
        }
    if isinstance(state, Flagged):
        return {
            "approved_by_manager_id": None,
            "approved_at": None,
            "flagged_by_manager_id": state.by,
        }
    return {
        "approved_by_manager_id": None,
        "approved_at": None,
        "flagged_by_manager_id": None,
    }


def review_fields(
    visit: Visit,
    actor: Actor,
    now: datetime,
    approve: bool = False,
    flag: bool = False,
    annotate: bool = False,
    note: Optional[str] = None,
) -> dict:
    """
    Columns to write for a manager approve / flag / note request.

    Approve and flag replace whatever review state the visit had, the note is
    independent of both and None clears it. Allowed in any lifecycle state.
    Nothing is returned until the actor's role and the combination are checked.
    """
    if not (approve or flag or annotate):
        return {}

    try:
        require_manager(actor)
    except ForbiddenError:
        logger.warning(
            f"Rejected review action on visit {visit.id} by {actor.role.value} {actor.user_id}"
        )
        raise

    if approve and flag:
        raise ValidationError("A visit cannot be approved and flagged at the same time")

    fields = {}
    state = None
    if approve:
        state = Approved(by=actor.user_id, at=now)
    elif flag:
        state = Flagged(by=actor.user_id)

    if state is not None:
        fields.update(review_columns(state))
        previous = review_state_of(visit)
        logger.info(
            f"Visit {visit.id} review {type(previous).__name__} -> {type(state).__name__} "
            f"by manager {actor.user_id}"
        )
    if annotate:
        fields["manager_note"] = note
    return fields
