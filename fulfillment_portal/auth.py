from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    OPS = "OPS"
    WAREHOUSE = "WAREHOUSE"
    ACCOUNTING = "ACCOUNTING"


OFFICE_ROLES = (Role.ADMIN, Role.OPS)
GATE_ROLES = (Role.ADMIN, Role.OPS, Role.WAREHOUSE)
READ_ROLES = (Role.ADMIN, Role.OPS, Role.WAREHOUSE, Role.ACCOUNTING)


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    active: bool

    @property
    def actor(self) -> str:
        return f"staff:{self.username}"


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
