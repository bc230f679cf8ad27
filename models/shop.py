from sqlmodel import SQLModel, Field, Index
from typing import Optional
from uuid import uuid4

from utils.geofence import GeoPoint, make_point

# Defines the Structure of Data for Comparing a Rep's Check-In to the Shop Location

DEFAULT_GEOFENCE_RADIUS_M = 100


# Shop w/ Circular Geofence (owned by shop management, read-only for visits)
class Shop(SQLModel, table=True):
    __tablename__ = "shops"

    __table_args__ = (
        Index("ix_shops_company_id", "company_id"),
        Index("ix_shops_region_id", "region_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    company_id: str = Field(..., description="Owning tenant")
    region_id: Optional[str] = Field(default=None, description="Sales region of the shop")
    name: str = Field(..., description="Human-friendly shop name")
    latitude: Optional[float] = Field(default=None, description="Latitude of shop center")
    longitude: Optional[float] = Field(default=None, description="Longitude of shop center")
    geofence_radius_m: int = Field(
        default=DEFAULT_GEOFENCE_RADIUS_M, description="Allowed check-in radius in meters"
    )
    is_active: bool = Field(default=True)

    @property
    def location(self) -> Optional[GeoPoint]:
        return make_point(self.latitude, self.longitude)
