import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import contains_eager
from sqlmodel import Session, select

from models.shop import Shop
from models.visit import Visit
from utils.datetime_helpers import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Persistence boundary for visits. Every lookup is keyed by tenant and id
# together, a visit from another tenant is indistinguishable from a missing one.


@dataclass(frozen=True)
class VisitFilters:
    tenant_id: str
    rep_id: Optional[str] = None
    shop_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    exceptions_only: bool = False
    region_id: Optional[str] = None


class VisitRepository(ABC):

    @abstractmethod
    def create(self, visit: Visit) -> Visit:
        ...

    @abstractmethod
    def find_by_id(self, tenant_id: str, visit_id: str) -> Optional[Visit]:
        ...

    @abstractmethod
    def update(self, tenant_id: str, visit_id: str, fields: dict) -> Optional[Visit]:
        """Apply a partial update; returns None when the visit does not exist in the tenant."""

    @abstractmethod
    def list(self, filters: VisitFilters) -> List[Visit]:
        """Visits matching the filters, newest start time first."""


class ShopRepository(ABC):

    @abstractmethod
    def find_by_id(self, tenant_id: str, shop_id: str) -> Optional[Shop]:
        ...


class SqlVisitRepository(VisitRepository):

    def __init__(self, session: Session):
        self.session = session

    def create(self, visit: Visit) -> Visit:
        try:
            self.session.add(visit)
            self.session.commit()
            self.session.refresh(visit)
        except Exception:
            self.session.rollback()
            logger.exception("Error creating visit for shop %s", visit.shop_id)
            raise
        return visit

    def _select(self):
        # Shop columns ride along for shop_name and region_id
        return (
            select(Visit)
            .join(Shop, Shop.id == Visit.shop_id)
            .options(contains_eager(Visit.shop))
        )

    def find_by_id(self, tenant_id: str, visit_id: str) -> Optional[Visit]:
        return self.session.exec(
            self._select()
            .where(Visit.id == visit_id)
            .where(Visit.company_id == tenant_id)
        ).first()

    def update(self, tenant_id: str, visit_id: str, fields: dict) -> Optional[Visit]:
        visit = self.find_by_id(tenant_id, visit_id)
        if visit is None:
            return None

        for name, value in fields.items():
            setattr(visit, name, value)
        visit.updated_at = utc_now()

        try:
            self.session.add(visit)
            self.session.commit()
            self.session.refresh(visit)
        except Exception:
            self.session.rollback()
            logger.exception("Error updating visit %s", visit_id)
            raise
        return visit

    def list(self, filters: VisitFilters) -> List[Visit]:
        statement = self._select().where(Visit.company_id == filters.tenant_id)

        if filters.rep_id:
            statement = statement.where(Visit.rep_company_user_id == filters.rep_id)
        if filters.shop_id:
            statement = statement.where(Visit.shop_id == filters.shop_id)
        if filters.date_from:
            statement = statement.where(Visit.started_at >= ensure_utc(filters.date_from))
        if filters.date_to:
            statement = statement.where(Visit.started_at <= ensure_utc(filters.date_to))
        if filters.region_id:
            statement = statement.where(Shop.region_id == filters.region_id)
        if filters.exceptions_only:
            statement = statement.where(Visit.exception_reason.is_not(None))

        statement = statement.order_by(Visit.started_at.desc())
        return list(self.session.exec(statement).all())


class SqlShopRepository(ShopRepository):

    def __init__(self, session: Session):
        self.session = session

    def find_by_id(self, tenant_id: str, shop_id: str) -> Optional[Shop]:
        return self.session.exec(
            select(Shop)
            .where(Shop.id == shop_id)
            .where(Shop.company_id == tenant_id)
        ).first()
