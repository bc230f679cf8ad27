from fastapi import APIRouter, Depends
from typing import Annotated, Optional

from core.deps import get_current_actor, get_shop_repository
from core.errors import NotFoundError
from core.roles import Actor
from db.repositories import ShopRepository
from pydantic import BaseModel

router = APIRouter()

# --- Pydantic Models for Response ---

class ShopGeofenceResponse(BaseModel):
    shop_id: str
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geofence_radius_m: int

# --- API Endpoints ---

@router.get("/{shop_id}/geofence", response_model=ShopGeofenceResponse)
def get_shop_geofence(
    shop_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    shops: Annotated[ShopRepository, Depends(get_shop_repository)],
):
    """
    Retrieve the geofence information (latitude, longitude, radius) for a shop
    in the caller's company, so the app can show the rep whether they are in range.
    """
    shop = shops.find_by_id(actor.tenant_id, shop_id)

    if not shop:
        raise NotFoundError("Shop not found")

    return ShopGeofenceResponse(
        shop_id=shop.id,
        name=shop.name,
        latitude=shop.latitude,
        longitude=shop.longitude,
        geofence_radius_m=shop.geofence_radius_m,
    )
