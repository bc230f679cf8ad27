import os

# db.session builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from core.deps import get_current_actor
from core.roles import Actor, Role
from db.repositories import SqlShopRepository, SqlVisitRepository
from db.session import get_session
from main import app
from models.shop import Shop
from services.visit_service import VisitService

TENANT = "company-a"
OTHER_TENANT = "company-b"

# Kathmandu Durbar Square
SHOP_LAT, SHOP_LNG = 27.7172, 85.3240

REP = Actor(tenant_id=TENANT, user_id="rep-1", role=Role.REP)
OTHER_REP = Actor(tenant_id=TENANT, user_id="rep-2", role=Role.REP)
MANAGER = Actor(tenant_id=TENANT, user_id="mgr-1", role=Role.MANAGER)
BOSS = Actor(tenant_id=TENANT, user_id="boss-1", role=Role.BOSS)
FOREIGN_MANAGER = Actor(tenant_id=OTHER_TENANT, user_id="mgr-9", role=Role.MANAGER)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ActorSwitch:
    def __init__(self, actor: Actor):
        self.actor = actor

    def use(self, actor: Actor) -> None:
        self.actor = actor


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 7, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def shop_ids(session):
    session.add_all(
        [
            Shop(
                id="shop-ktm",
                company_id=TENANT,
                region_id="region-central",
                name="Kathmandu Traders",
                latitude=SHOP_LAT,
                longitude=SHOP_LNG,
                geofence_radius_m=100,
            ),
            Shop(
                id="shop-lalitpur",
                company_id=TENANT,
                region_id="region-south",
                name="Lalitpur Stores",
                latitude=27.6644,
                longitude=85.3188,
                geofence_radius_m=150,
            ),
            Shop(id="shop-unmapped", company_id=TENANT, name="No Pin Mart"),
            Shop(
                id="shop-foreign",
                company_id=OTHER_TENANT,
                name="Elsewhere Ltd",
                latitude=SHOP_LAT,
                longitude=SHOP_LNG,
            ),
        ]
    )
    session.commit()
    return {
        "ktm": "shop-ktm",
        "lalitpur": "shop-lalitpur",
        "unmapped": "shop-unmapped",
        "foreign": "shop-foreign",
    }


@pytest.fixture
def service(session, shop_ids, clock):
    return VisitService(SqlVisitRepository(session), SqlShopRepository(session), clock)


@pytest.fixture
def acting():
    return ActorSwitch(REP)


@pytest.fixture
def client(engine, shop_ids, acting):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_actor] = lambda: acting.actor
    yield TestClient(app)
    app.dependency_overrides.clear()
