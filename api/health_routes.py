import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlmodel import Session

from db.session import get_session
from utils.datetime_helpers import format_utc_datetime

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"


def _ping(session: Session) -> bool:
    try:
        session.connection().execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


@router.get("")
def health(session: Annotated[Session, Depends(get_session)]):
    if not _ping(session):
        return JSONResponse(status_code=503, content={"ok": False, "database": "disconnected"})
    return {"ok": True, "database": "connected", "version": API_VERSION}


@router.get("/db")
def health_db(session: Annotated[Session, Depends(get_session)]):
    if not _ping(session):
        return JSONResponse(status_code=503, content={"ok": False, "database": "disconnected"})
    return {
        "ok": True,
        "database": "connected",
        "time": format_utc_datetime(datetime.now(timezone.utc)),
    }
