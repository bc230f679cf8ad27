import logging
from datetime import datetime
from typing import Callable, List

from core.errors import ForbiddenError, InvalidStateError, ValidationError
from core.roles import Actor
from db.repositories import ShopRepository, VisitFilters, VisitRepository
from models.visit import Visit, VisitCreate, VisitStatus, VisitUpdate
from services.review_workflow import review_fields
from services.visit_lifecycle import (
    EDITABLE_FIELDS,
    VisitLifecycle,
    cancel_fields,
    edit_fields,
    end_fields,
)
from utils.datetime_helpers import utc_now
from utils.geofence import make_point

logger = logging.getLogger(__name__)


class VisitService:
    """
    The visit operations exposed to the HTTP layer.

    Composes the lifecycle planners (rep side) and review_fields (manager side) and
    applies role based visibility: a rep only ever sees and touches their own
    visits, and only managers may approve, flag or annotate.
    """

    def __init__(
        self,
        visits: VisitRepository,
        shops: ShopRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.visits = visits
        self.clock = clock
        self.lifecycle = VisitLifecycle(visits, shops, clock)

    def start_visit(self, actor: Actor, payload: VisitCreate) -> Visit:
        return self.lifecycle.start(actor.tenant_id, actor.user_id, payload)

    def get_visit(self, actor: Actor, visit_id: str) -> Visit:
        visit = self.lifecycle.load(actor.tenant_id, visit_id)
        self._check_owner(actor, visit)
        return visit

    def list_visits(self, actor: Actor, filters: VisitFilters) -> List[Visit]:
        rep_id = actor.user_id if actor.is_rep else filters.rep_id
        scoped = VisitFilters(
            tenant_id=actor.tenant_id,
            rep_id=rep_id,
            shop_id=filters.shop_id,
            date_from=filters.date_from,
            date_to=filters.date_to,
            exceptions_only=filters.exceptions_only,
            region_id=filters.region_id,
        )
        return self.visits.list(scoped)

    def update_visit(self, actor: Actor, visit_id: str, payload: VisitUpdate) -> Visit:
        """
        Apply a combined rep/manager update in one write.

        All checks run against the current row before anything is written, so
        a rejected request never leaves a partial change behind.
        """
        visit = self.lifecycle.load(actor.tenant_id, visit_id)
        self._check_owner(actor, visit)

        sent = payload.model_fields_set
        now = self.clock()
        review = review_fields(
            visit,
            actor,
            now,
            approve=bool(payload.approve),
            flag=bool(payload.flag),
            annotate="manager_note" in sent,
            note=payload.manager_note,
        )

        ending = bool(payload.end) or payload.status == VisitStatus.COMPLETED
        cancelling = payload.status == VisitStatus.CANCELLED
        if ending and cancelling:
            raise ValidationError("A visit cannot be ended and cancelled at the same time")

        end_location = make_point(payload.end_latitude, payload.end_longitude)
        if end_location is not None and not ending:
            raise ValidationError("End coordinates can only be recorded when ending a visit")

        if payload.status == VisitStatus.ONGOING and visit.status != VisitStatus.ONGOING:
            raise InvalidStateError("A finished visit cannot be reopened.")

        fields = {}

        changes = {
            name: getattr(payload, name)
            for name in EDITABLE_FIELDS
            if name in sent and getattr(payload, name) is not None
        }
        if changes:
            fields.update(edit_fields(visit, changes))

        if ending:
            fields.update(end_fields(visit, now, end_location))
        elif cancelling:
            fields.update(cancel_fields(visit))

        fields.update(review)

        if not fields:
            return visit

        visit = self.lifecycle.save(actor.tenant_id, visit_id, fields)
        logger.info(f"Visit {visit_id} updated by {actor.user_id}: {sorted(fields)}")
        return visit

    def _check_owner(self, actor: Actor, visit: Visit) -> None:
        if actor.is_rep and visit.rep_company_user_id != actor.user_id:
            raise ForbiddenError("Forbidden")
