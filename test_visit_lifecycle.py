from datetime import timedelta

import pytest

from conftest import FOREIGN_MANAGER, MANAGER, OTHER_REP, REP, TENANT, OTHER_TENANT, SHOP_LAT, SHOP_LNG
from core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from db.repositories import SqlShopRepository, SqlVisitRepository, VisitFilters
from models.visit import ExceptionReason, VerificationMethod, VisitCreate, VisitStatus, VisitUpdate
from services.visit_lifecycle import VisitLifecycle, cancel_fields, edit_fields, end_fields
from services.visit_service import VisitService
from utils.datetime_helpers import ensure_utc
from utils.geofence import GeoPoint


def start_near(service, shop_id, actor=REP, **extra):
    payload = VisitCreate(shop_id=shop_id, latitude=SHOP_LAT + 0.0005, longitude=SHOP_LNG, **extra)
    return service.start_visit(actor, payload)


def test_start_runs_verification_once(service, shop_ids, clock):
    visit = start_near(service, shop_ids["ktm"], gps_accuracy_m=8, notes="Weekly restock")

    assert visit.status == VisitStatus.ONGOING
    assert visit.company_id == TENANT
    assert visit.rep_company_user_id == REP.user_id
    assert visit.is_verified is True
    assert visit.verification_method == VerificationMethod.GEOFENCE
    assert visit.gps_accuracy_m == 8
    assert visit.notes == "Weekly restock"
    assert ensure_utc(visit.started_at) == clock.now
    assert ensure_utc(visit.verified_at) == clock.now
    assert visit.ended_at is None


def test_start_at_unmapped_shop_is_manual(service, shop_ids):
    visit = start_near(service, shop_ids["unmapped"])

    assert visit.verification_method == VerificationMethod.MANUAL
    assert visit.distance_m is None
    assert visit.exception_reason == ExceptionReason.OTHER


@pytest.mark.parametrize("shop_id", ["does-not-exist", "shop-foreign"])
def test_start_requires_shop_in_tenant(service, shop_ids, shop_id):
    with pytest.raises(NotFoundError):
        start_near(service, shop_id)


def test_edit_does_not_recompute_verification(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    distance_before = visit.distance_m

    # Correct the start coordinates to somewhere far away
    updated = service.update_visit(
        REP,
        visit.id,
        VisitUpdate(latitude=SHOP_LAT + 0.045, longitude=SHOP_LNG, purpose="Collections"),
    )

    assert updated.latitude == pytest.approx(SHOP_LAT + 0.045)
    assert updated.purpose == "Collections"
    assert updated.is_verified is True
    assert updated.verification_method == VerificationMethod.GEOFENCE
    assert updated.distance_m == distance_before


def test_end_sets_completed_and_end_location(service, shop_ids, clock):
    visit = start_near(service, shop_ids["ktm"])
    clock.advance(minutes=25)

    ended = service.update_visit(
        REP, visit.id, VisitUpdate(end=True, end_latitude=27.7180, end_longitude=85.3245)
    )

    assert ended.status == VisitStatus.COMPLETED
    assert ensure_utc(ended.ended_at) == clock.now
    assert ended.end_lat == pytest.approx(27.7180)
    assert ended.end_lng == pytest.approx(85.3245)
    # start location untouched
    assert ended.latitude == pytest.approx(SHOP_LAT + 0.0005)


def test_status_completed_is_the_same_as_end(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    ended = service.update_visit(REP, visit.id, VisitUpdate(status=VisitStatus.COMPLETED))
    assert ended.status == VisitStatus.COMPLETED
    assert ended.ended_at is not None


def test_ending_twice_is_invalid_state(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    service.update_visit(REP, visit.id, VisitUpdate(end=True))

    with pytest.raises(InvalidStateError):
        service.update_visit(REP, visit.id, VisitUpdate(end=True))


def test_cancel_leaves_ended_at_empty(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    cancelled = service.update_visit(REP, visit.id, VisitUpdate(status=VisitStatus.CANCELLED))

    assert cancelled.status == VisitStatus.CANCELLED
    assert cancelled.ended_at is None

    with pytest.raises(InvalidStateError):
        service.update_visit(REP, visit.id, VisitUpdate(end=True))


@pytest.mark.parametrize(
    "update",
    [
        VisitUpdate(notes="late note"),
        VisitUpdate(latitude=27.0, longitude=85.0),
        VisitUpdate(status=VisitStatus.CANCELLED),
        VisitUpdate(status=VisitStatus.ONGOING),
    ],
)
def test_terminal_visit_rejects_changes(service, shop_ids, update):
    visit = start_near(service, shop_ids["ktm"])
    service.update_visit(REP, visit.id, VisitUpdate(end=True))

    with pytest.raises(InvalidStateError):
        service.update_visit(REP, visit.id, update)


def test_end_location_without_ending_is_rejected(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    with pytest.raises(ValidationError):
        service.update_visit(REP, visit.id, VisitUpdate(end_latitude=27.7, end_longitude=85.3))


def test_end_and_cancel_together_is_rejected(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    with pytest.raises(ValidationError):
        service.update_visit(REP, visit.id, VisitUpdate(end=True, status=VisitStatus.CANCELLED))


def test_foreign_tenant_update_is_not_found(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])

    with pytest.raises(NotFoundError):
        service.update_visit(FOREIGN_MANAGER, visit.id, VisitUpdate(notes="peek"))
    with pytest.raises(NotFoundError):
        service.update_visit(FOREIGN_MANAGER, visit.id, VisitUpdate(approve=True))


def test_rep_cannot_touch_another_reps_visit(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])

    with pytest.raises(ForbiddenError):
        service.update_visit(OTHER_REP, visit.id, VisitUpdate(notes="not mine"))
    with pytest.raises(ForbiddenError):
        service.get_visit(OTHER_REP, visit.id)


def test_manager_can_edit_any_visit_in_tenant(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    updated = service.update_visit(MANAGER, visit.id, VisitUpdate(outcome="Order placed"))
    assert updated.outcome == "Order placed"


def test_empty_update_returns_visit_unchanged(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])
    same = service.update_visit(REP, visit.id, VisitUpdate())
    assert same.id == visit.id
    assert same.status == VisitStatus.ONGOING


# --- Transition planners used directly ---


def test_planners_on_ongoing_and_finished_visits(service, shop_ids, clock):
    visit = service.start_visit(REP, VisitCreate(shop_id=shop_ids["ktm"]))

    ended = end_fields(visit, clock.now, GeoPoint(27.7, 85.3))
    assert ended == {
        "status": VisitStatus.COMPLETED,
        "ended_at": clock.now,
        "end_lat": 27.7,
        "end_lng": 85.3,
    }
    assert cancel_fields(visit) == {"status": VisitStatus.CANCELLED}

    cancelled = service.update_visit(REP, visit.id, VisitUpdate(status=VisitStatus.CANCELLED))
    with pytest.raises(InvalidStateError):
        edit_fields(cancelled, {"notes": "too late"})
    with pytest.raises(InvalidStateError):
        end_fields(cancelled, clock.now)
    with pytest.raises(InvalidStateError):
        cancel_fields(cancelled)


def test_edit_fields_rejects_verification_fields(service, shop_ids):
    visit = service.start_visit(REP, VisitCreate(shop_id=shop_ids["ktm"]))

    with pytest.raises(ValidationError):
        edit_fields(visit, {"is_verified": True})
    with pytest.raises(ValidationError):
        edit_fields(visit, {"latitude": 27.7})
    assert edit_fields(visit, {"notes": "ok"}) == {"notes": "ok"}


def test_lifecycle_load_is_tenant_scoped(session, shop_ids, clock):
    lifecycle = VisitLifecycle(SqlVisitRepository(session), SqlShopRepository(session), clock)
    visit = lifecycle.start(TENANT, REP.user_id, VisitCreate(shop_id=shop_ids["ktm"]))

    assert lifecycle.load(TENANT, visit.id).id == visit.id
    with pytest.raises(NotFoundError):
        lifecycle.load(OTHER_TENANT, visit.id)


class VanishingVisitRepository(SqlVisitRepository):
    """Simulates the row being deleted between the read and the write."""

    def update(self, tenant_id, visit_id, fields):
        return None


def test_update_of_vanished_visit_is_not_found(session, shop_ids, clock):
    service = VisitService(VanishingVisitRepository(session), SqlShopRepository(session), clock)
    visit = service.start_visit(REP, VisitCreate(shop_id=shop_ids["ktm"]))

    with pytest.raises(NotFoundError):
        service.update_visit(REP, visit.id, VisitUpdate(end=True))


# --- Listing ---


def test_list_is_newest_first_and_filtered(service, shop_ids, clock):
    first = start_near(service, shop_ids["ktm"])
    clock.advance(hours=1)
    second = service.start_visit(REP, VisitCreate(shop_id=shop_ids["lalitpur"]))
    clock.advance(hours=1)
    third = start_near(service, shop_ids["ktm"], actor=OTHER_REP)

    everything = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT))
    assert [v.id for v in everything] == [third.id, second.id, first.id]

    by_rep = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT, rep_id=OTHER_REP.user_id))
    assert [v.id for v in by_rep] == [third.id]

    by_shop = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT, shop_id=shop_ids["lalitpur"]))
    assert [v.id for v in by_shop] == [second.id]

    by_region = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT, region_id="region-central"))
    assert [v.id for v in by_region] == [third.id, first.id]

    # second visit had no coordinates, so it is the only exception
    exceptions = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT, exceptions_only=True))
    assert [v.id for v in exceptions] == [second.id]

    window = service.list_visits(
        MANAGER,
        VisitFilters(
            tenant_id=TENANT,
            date_from=clock.now - timedelta(hours=1, minutes=30),
            date_to=clock.now - timedelta(minutes=30),
        ),
    )
    assert [v.id for v in window] == [second.id]


def test_rep_only_lists_own_visits(service, shop_ids):
    mine = start_near(service, shop_ids["ktm"])
    start_near(service, shop_ids["ktm"], actor=OTHER_REP)

    visits = service.list_visits(REP, VisitFilters(tenant_id=TENANT, rep_id=OTHER_REP.user_id))
    assert [v.id for v in visits] == [mine.id]


def test_list_never_crosses_tenants(service, shop_ids):
    start_near(service, shop_ids["ktm"])
    assert service.list_visits(FOREIGN_MANAGER, VisitFilters(tenant_id=TENANT)) == []


def test_listed_visits_include_their_shop(service, shop_ids):
    visit = start_near(service, shop_ids["ktm"])

    [listed] = service.list_visits(MANAGER, VisitFilters(tenant_id=TENANT))
    assert listed.id == visit.id
    assert listed.shop_name == "Kathmandu Traders"
    assert listed.region_id == "region-central"
