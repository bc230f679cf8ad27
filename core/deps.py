from fastapi import Depends, HTTPException, Request, status
from typing import Annotated  # Use typing.Annotated for Python 3.9+
import logging

from sqlmodel import Session

from core.firebase import verify_id_token
from core.roles import Actor, Role
from db.repositories import SqlShopRepository, SqlVisitRepository
from db.session import get_session
from services.visit_service import VisitService

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


# Resolves the caller's tenant, id and role from the Firebase ID token's custom claims
async def get_current_actor(request: Request) -> Actor:
    # 1) Extract & Analyze Authorization Header
    auth_header = request.headers.get("Authorization", "")

    # Make Sure Formatting Valid
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header.split(" ", 1)[1]

    # 2) Verify This Points to a Real User Account
    try:
        decoded = verify_id_token(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {type(e).__name__}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token"
        )

    # 3) Company membership lives in the custom claims
    uid = decoded.get("uid")
    tenant_id = decoded.get("company_id")
    user_id = decoded.get("company_user_id") or uid
    if not tenant_id or not user_id:
        raise CREDENTIALS_EXCEPTION

    try:
        role = Role(decoded.get("role", ""))
    except ValueError:
        logger.warning(f"Token for {uid} carries unknown role {decoded.get('role')!r}")
        raise CREDENTIALS_EXCEPTION

    return Actor(tenant_id=tenant_id, user_id=user_id, role=role)


# Getter for the visit service bound to this request's session
def get_visit_service(
    session: Annotated[Session, Depends(get_session)],
) -> VisitService:
    return VisitService(SqlVisitRepository(session), SqlShopRepository(session))


def get_shop_repository(
    session: Annotated[Session, Depends(get_session)],
) -> SqlShopRepository:
    return SqlShopRepository(session)
