"""JWT decoding for the points engine.

Token issuance belongs to the surrounding app's auth service. This module
only verifies bearer tokens signed with the shared HS256 secret and reads the
`sub` (user id) and `role` claims. create_access_token exists for tests and
local tooling.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.pe_common.enums import Role
from src.pe_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(user_id: str, role: Role | str = Role.MEMBER) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": Role(role).value,
        "type": "access",
        "iat": now,
        "exp": now + _ACCESS_EXPIRE,
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: bad signature, expired, wrong type, or an
            unknown role claim.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type", "access") != "access":
        raise InvalidCredentialsError()
    if not payload.get("sub"):
        raise InvalidCredentialsError()
    role = payload.get("role", Role.MEMBER.value)
    if role not in {r.value for r in Role}:
        raise InvalidCredentialsError()
    payload["role"] = role
    return payload
