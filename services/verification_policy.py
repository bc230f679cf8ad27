from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from models.visit import ExceptionReason, VerificationMethod
from utils.datetime_helpers import utc_now
from utils.geofence import GeoPoint, distance

# If GPS accuracy is worse than this, the visit is an automatic exception
GPS_ACCURACY_THRESHOLD_M = 50.0


@dataclass(frozen=True)
class VerificationOutcome:
    is_verified: bool
    distance_m: Optional[float]
    verification_method: VerificationMethod
    exception_reason: Optional[ExceptionReason]
    exception_note: Optional[str]
    verified_at: Optional[datetime]

    def as_fields(self) -> dict:
        return asdict(self)


def classify_visit(
    reported: Optional[GeoPoint],
    gps_accuracy_m: Optional[float],
    shop_location: Optional[GeoPoint],
    geofence_radius_m: float,
    exception_reason: Optional[ExceptionReason] = None,
    exception_note: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
) -> VerificationOutcome:
    """
    Decide whether a visit check-in can be trusted.

    Rules are evaluated in order: missing location, poor GPS accuracy, inside
    the geofence, outside the geofence. A caller supplied exception reason is
    kept unless the rep is inside the geofence, in which case it is cleared.
    Missing reasons are defaulted so that every unverified visit carries one.
    """

    # 1) Nothing to compare against
    if reported is None or shop_location is None:
        return VerificationOutcome(
            is_verified=False,
            distance_m=None,
            verification_method=VerificationMethod.MANUAL,
            exception_reason=exception_reason or ExceptionReason.OTHER,
            exception_note=exception_note,
            verified_at=None,
        )

    # Rounded to the centimetre, the stored value is the one compared to the radius
    distance_m = round(distance(reported, shop_location), 2)

    # 2) Fix too poor to trust, distance kept for audit
    if gps_accuracy_m is not None and gps_accuracy_m > GPS_ACCURACY_THRESHOLD_M:
        return VerificationOutcome(
            is_verified=False,
            distance_m=distance_m,
            verification_method=VerificationMethod.LOW_ACCURACY,
            exception_reason=exception_reason or ExceptionReason.LOW_GPS_ACCURACY,
            exception_note=exception_note,
            verified_at=None,
        )

    # 3) Physically at the shop
    if distance_m <= geofence_radius_m:
        return VerificationOutcome(
            is_verified=True,
            distance_m=distance_m,
            verification_method=VerificationMethod.GEOFENCE,
            exception_reason=None,
            exception_note=exception_note,
            verified_at=clock(),
        )

    # 4) Out of range, allowed but needs review
    return VerificationOutcome(
        is_verified=False,
        distance_m=distance_m,
        verification_method=VerificationMethod.GPS_MISMATCH,
        exception_reason=exception_reason or ExceptionReason.OTHER,
        exception_note=exception_note,
        verified_at=None,
    )
