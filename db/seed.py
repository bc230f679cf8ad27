# Insert sample shops for a local demo company
import logging
import os

from sqlmodel import Session, SQLModel

from models.shop import Shop

logger = logging.getLogger(__name__)

DEMO_COMPANY_ID = os.getenv("DEMO_COMPANY_ID", "demo-company")

DEMO_SHOPS = [
    # In-range check-ins from the square verify against the 100 m geofence
    dict(id="demo-ktm-durbar", name="Durbar Square Traders", latitude=27.7172, longitude=85.3240, geofence_radius_m=100),
    dict(id="demo-patan", name="Patan Wholesale", latitude=27.6727, longitude=85.3253, geofence_radius_m=150),
    # No pin yet, every visit here goes to manual review
    dict(id="demo-unmapped", name="Roadside Kiosk", latitude=None, longitude=None, geofence_radius_m=100),
]


def seed_shops(engine, company_id: str = DEMO_COMPANY_ID) -> int:
    SQLModel.metadata.create_all(engine)
    added = 0
    with Session(engine) as session:
        for data in DEMO_SHOPS:
            # Check if shop already exists to avoid duplicates
            if session.get(Shop, data["id"]):
                logger.info(f"Shop {data['id']} already exists")
                continue
            session.add(Shop(company_id=company_id, **data))
            added += 1
            logger.info(f"Added shop {data['id']}")

        session.commit()
    return added


if __name__ == "__main__":
    from db.session import engine

    logging.basicConfig(level=logging.INFO)
    seed_shops(engine)
