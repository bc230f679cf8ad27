from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, computed_field, field_serializer, model_validator
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import DateTime
from sqlmodel import Field, Index, Relationship, SQLModel

from models.shop import Shop
from utils.datetime_helpers import format_utc_datetime, utc_now


class VisitStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VerificationMethod(str, Enum):
    NONE = "none"
    GEOFENCE = "geofence"
    GPS_MISMATCH = "gps_mismatch"
    LOW_ACCURACY = "low_accuracy"
    MANUAL = "manual"


# Explanations a rep (or the system) gives for a visit that could not be geofence-verified
class ExceptionReason(str, Enum):
    GPS_DRIFT = "gps_drift"
    SHOP_MOVED = "shop_moved"
    ROAD_BLOCKED = "road_blocked"
    ALTERNATE_LOCATION = "alternate_location"
    CUSTOMER_REQUESTED_OUTSIDE = "customer_requested_outside"
    LOW_GPS_ACCURACY = "low_gps_accuracy"
    OTHER = "other"


# Defines a Table "visits" w/ the rep check-in, its verification outcome and manager review
class Visit(SQLModel, table=True):
    __tablename__ = "visits"

    __table_args__ = (
        Index("ix_visits_company_id", "company_id"),
        # Listing is always tenant scoped and sorted by start time
        Index("ix_visits_company_id_started_at", "company_id", "started_at"),
        Index("ix_visits_rep_company_user_id", "rep_company_user_id"),
        Index("ix_visits_shop_id", "shop_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    company_id: str
    shop_id: str = Field(foreign_key="shops.id")
    rep_company_user_id: str

    started_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    ended_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    status: VisitStatus = Field(default=VisitStatus.ONGOING)

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    gps_accuracy_m: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None

    notes: Optional[str] = None
    purpose: Optional[str] = None
    outcome: Optional[str] = None
    image_url: Optional[str] = None

    # Verification outcome, written once at creation
    is_verified: bool = Field(default=False)
    distance_m: Optional[float] = None
    verification_method: VerificationMethod = Field(default=VerificationMethod.NONE)
    exception_reason: Optional[ExceptionReason] = None
    exception_note: Optional[str] = None
    verified_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Manager review
    approved_by_manager_id: Optional[str] = Field(default=None)
    approved_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    flagged_by_manager_id: Optional[str] = Field(default=None)
    manager_note: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))

    # Loaded with the visit by the repository for review screens
    shop: Optional[Shop] = Relationship()

    @property
    def shop_name(self) -> Optional[str]:
        return self.shop.name if self.shop else None

    @property
    def region_id(self) -> Optional[str]:
        return self.shop.region_id if self.shop else None


# --- Request Payloads ---
# The mobile app sends camelCase, snake_case is accepted as well


def _check_pair(lat: Optional[float], lng: Optional[float], label: str) -> None:
    if (lat is None) != (lng is None):
        raise ValueError(f"{label} latitude and longitude must be provided together")


class VisitCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    shop_id: str = PydanticField(..., min_length=1)
    latitude: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    longitude: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    gps_accuracy_m: Optional[float] = PydanticField(default=None, ge=0)
    notes: Optional[str] = None
    purpose: Optional[str] = None
    outcome: Optional[str] = None
    image_url: Optional[str] = None
    # Sent by the mobile app when the rep is out of range
    exception_reason: Optional[ExceptionReason] = None
    exception_note: Optional[str] = None

    @model_validator(mode="after")
    def check_coordinates(self):
        _check_pair(self.latitude, self.longitude, "Visit")
        return self


class VisitUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: Optional[VisitStatus] = None
    end: Optional[bool] = None
    notes: Optional[str] = None
    purpose: Optional[str] = None
    outcome: Optional[str] = None
    image_url: Optional[str] = None
    latitude: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    longitude: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    end_latitude: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    end_longitude: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    # Manager actions
    approve: Optional[bool] = None
    flag: Optional[bool] = None
    manager_note: Optional[str] = None

    @model_validator(mode="after")
    def check_coordinates(self):
        _check_pair(self.latitude, self.longitude, "Visit")
        _check_pair(self.end_latitude, self.end_longitude, "End")
        return self


# --- Response Model ---


class VisitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    shop_id: str
    rep_company_user_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: VisitStatus
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    gps_accuracy_m: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None
    notes: Optional[str] = None
    purpose: Optional[str] = None
    outcome: Optional[str] = None
    image_url: Optional[str] = None
    is_verified: bool
    distance_m: Optional[float] = None
    verification_method: VerificationMethod
    exception_reason: Optional[ExceptionReason] = None
    exception_note: Optional[str] = None
    verified_at: Optional[datetime] = None
    approved_by_manager_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    flagged_by_manager_id: Optional[str] = None
    manager_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # From the visited shop
    shop_name: Optional[str] = None
    region_id: Optional[str] = None

    @computed_field
    @property
    def visit_date(self) -> Optional[str]:
        return format_utc_datetime(self.started_at)

    @field_serializer(
        "started_at", "ended_at", "verified_at", "approved_at", "created_at", "updated_at"
    )
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)

    @classmethod
    def from_visit(cls, visit: Visit) -> "VisitRead":
        return cls.model_validate(visit, from_attributes=True)
