from dataclasses import dataclass
from enum import Enum

from core.errors import ForbiddenError


class Role(str, Enum):
    BOSS = "boss"
    MANAGER = "manager"
    REP = "rep"
    BACK_OFFICE = "back_office"
    DISPATCH_SUPERVISOR = "dispatch_supervisor"


# Roles allowed to approve / flag visits
MANAGER_ROLES = {Role.BOSS, Role.MANAGER}


@dataclass(frozen=True)
class Actor:
    tenant_id: str
    user_id: str
    role: Role

    @property
    def is_rep(self) -> bool:
        return self.role == Role.REP

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


def require_manager(actor: Actor) -> None:
    if not actor.is_manager:
        raise ForbiddenError("Only managers can approve or flag visits")
