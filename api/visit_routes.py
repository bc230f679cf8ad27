from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from core.deps import get_current_actor, get_visit_service
from core.roles import Actor
from db.repositories import VisitFilters
from models.visit import VisitCreate, VisitRead, VisitUpdate
from services.visit_service import VisitService

router = APIRouter()

# --- Pydantic Models for Response ---


class VisitResponse(BaseModel):
    ok: bool = True
    visit: VisitRead


class VisitListResponse(BaseModel):
    ok: bool = True
    visits: List[VisitRead]


# --- API Endpoints ---


# Endpoint: List Visits (reps only ever see their own)
@router.get("", response_model=VisitListResponse)
def list_visits(
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[VisitService, Depends(get_visit_service)],
    rep: Optional[str] = None,
    shop: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    exceptions_only: bool = Query(default=False, description="Only visits carrying an exception reason"),
    region: Optional[str] = None,
):
    filters = VisitFilters(
        tenant_id=actor.tenant_id,
        rep_id=rep,
        shop_id=shop,
        date_from=date_from,
        date_to=date_to,
        exceptions_only=exceptions_only,
        region_id=region,
    )
    visits = service.list_visits(actor, filters)
    return VisitListResponse(visits=[VisitRead.from_visit(v) for v in visits])


# Endpoint: Start a Visit (check-in with geofence verification)
@router.post("", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
def start_visit(
    payload: VisitCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[VisitService, Depends(get_visit_service)],
):
    visit = service.start_visit(actor, payload)
    return VisitResponse(visit=VisitRead.from_visit(visit))


# Endpoint: Get a Single Visit
@router.get("/{visit_id}", response_model=VisitResponse)
def read_visit(
    visit_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[VisitService, Depends(get_visit_service)],
):
    visit = service.get_visit(actor, visit_id)
    return VisitResponse(visit=VisitRead.from_visit(visit))


# Endpoint: Update a Visit (rep edits / end / cancel, manager approve / flag / note)
@router.patch("/{visit_id}", response_model=VisitResponse)
def update_visit(
    visit_id: str,
    payload: VisitUpdate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[VisitService, Depends(get_visit_service)],
):
    visit = service.update_visit(actor, visit_id, payload)
    return VisitResponse(visit=VisitRead.from_visit(visit))
