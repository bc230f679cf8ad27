import logging
from datetime import datetime
from typing import Callable, Optional

from core.errors import InvalidStateError, NotFoundError, ValidationError
from db.repositories import ShopRepository, VisitRepository
from models.visit import Visit, VisitCreate, VisitStatus
from services.verification_policy import classify_visit
from utils.datetime_helpers import utc_now
from utils.geofence import GeoPoint, make_point

logger = logging.getLogger(__name__)

# Fields a rep may change while the visit is ongoing. Verification fields are
# fixed at creation and never appear here.
EDITABLE_FIELDS = ("notes", "purpose", "outcome", "image_url", "latitude", "longitude")


def require_ongoing(visit: Visit, action: str) -> None:
    if visit.status != VisitStatus.ONGOING:
        raise InvalidStateError(
            f"Cannot {action} a visit that is {VisitStatus(visit.status).value}."
        )


# --- Transition planners: validate against the current row and return the columns to write ---


def edit_fields(visit: Visit, changes: dict) -> dict:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
    if ("latitude" in changes) != ("longitude" in changes):
        raise ValidationError("Visit latitude and longitude must be provided together")

    require_ongoing(visit, "edit")
    return dict(changes)


def end_fields(visit: Visit, now: datetime, end_location: Optional[GeoPoint] = None) -> dict:
    require_ongoing(visit, "end")
    fields = {"status": VisitStatus.COMPLETED, "ended_at": now}
    if end_location is not None:
        fields["end_lat"] = end_location.lat
        fields["end_lng"] = end_location.lng
    return fields


def cancel_fields(visit: Visit) -> dict:
    require_ongoing(visit, "cancel")
    return {"status": VisitStatus.CANCELLED}


class VisitLifecycle:
    """Starts visits and persists planned transitions, reading before every write."""

    def __init__(
        self,
        visits: VisitRepository,
        shops: ShopRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.visits = visits
        self.shops = shops
        self.clock = clock

    def start(self, tenant_id: str, rep_id: str, payload: VisitCreate) -> Visit:
        shop = self.shops.find_by_id(tenant_id, payload.shop_id)
        if shop is None:
            raise NotFoundError("Shop not found")

        now = self.clock()
        outcome = classify_visit(
            reported=make_point(payload.latitude, payload.longitude),
            gps_accuracy_m=payload.gps_accuracy_m,
            shop_location=shop.location,
            geofence_radius_m=shop.geofence_radius_m,
            exception_reason=payload.exception_reason,
            exception_note=payload.exception_note,
            clock=lambda: now,
        )

        visit = Visit(
            company_id=tenant_id,
            shop_id=shop.id,
            rep_company_user_id=rep_id,
            started_at=now,
            status=VisitStatus.ONGOING,
            latitude=payload.latitude,
            longitude=payload.longitude,
            gps_accuracy_m=payload.gps_accuracy_m,
            notes=payload.notes,
            purpose=payload.purpose,
            outcome=payload.outcome,
            image_url=payload.image_url,
            created_at=now,
            updated_at=now,
            **outcome.as_fields(),
        )
        visit = self.visits.create(visit)

        logger.info(
            f"Visit {visit.id} started by {rep_id} at shop {shop.id}: "
            f"method={outcome.verification_method.value} verified={outcome.is_verified} "
            f"distance_m={outcome.distance_m}"
        )
        return visit

    def load(self, tenant_id: str, visit_id: str) -> Visit:
        visit = self.visits.find_by_id(tenant_id, visit_id)
        if visit is None:
            raise NotFoundError("Visit not found")
        return visit

    def save(self, tenant_id: str, visit_id: str, fields: dict) -> Visit:
        visit = self.visits.update(tenant_id, visit_id, fields)
        # Row vanished between read and write
        if visit is None:
            raise NotFoundError("Visit not found")
        return visit

