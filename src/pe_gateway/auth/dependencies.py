"""FastAPI dependencies: get_current_user and role guards.

Usage in any protected router:
    from src.pe_gateway.auth.dependencies import get_current_user, require_admin

    @router.post("/grant")
    async def grant(admin: CurrentUser = Depends(require_admin)):
        ...
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.pe_common.enums import Role
from src.pe_common.errors import ForbiddenError, InvalidCredentialsError
from src.pe_gateway.auth.jwt_handler import decode_token

# Tokens come from the app's auth service; tokenUrl only feeds the Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Extract the caller from the Bearer token. HTTP 401 on any failure."""
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None
    return CurrentUser(id=str(payload["sub"]), role=Role(payload["role"]))


def require_role(*roles: Role) -> Callable[..., Awaitable[CurrentUser]]:
    """Dependency factory: 403 unless the caller holds one of `roles`.

    Admin passes every guard.
    """
    allowed = set(roles) | {Role.ADMIN}

    async def _guard(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise ForbiddenError(" or ".join(sorted(r.value for r in allowed)))
        return current_user

    return _guard


require_admin = require_role(Role.ADMIN)
require_terminal = require_role(Role.PDV)
require_system = require_role(Role.SYSTEM)
