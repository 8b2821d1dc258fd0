from typing import Annotated, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from agriconnect.config import settings
from agriconnect.errors import forbidden, unauthorized
from agriconnect.models import User, get_db
from agriconnect.models.enums import UserRole
from agriconnect.services.rate_limiter import enforce_rate_limit, get_identifier

security = HTTPBearer(auto_error=False)


def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User | None:
    if not credentials:
        return None
    token = credentials.credentials
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        sub = payload.get("sub")
        token_type = payload.get("type")
        if sub is None:
            return None
        if token_type not in {None, "access"}:
            return None
        user_id = int(sub) if not isinstance(sub, int) else sub
    except (JWTError, ValueError):
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(
    user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    if user is None:
        raise unauthorized()
    return user


def require_role(*roles: UserRole) -> Callable[[User], User]:
    """Build a dependency that only lets users with one of the given roles through."""
    allowed = {role.value for role in roles}

    def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in allowed:
            names = " or ".join(sorted(allowed))
            raise forbidden(f"Only {names} users can perform this action")
        return user

    return dependency


get_admin_user = require_role(UserRole.ADMIN)
get_farmer_user = require_role(UserRole.FARMER)
get_seller_user = require_role(UserRole.SELLER)


def rate_limit(category: str) -> Callable[..., None]:
    """Build a dependency counting the request against the category's limiter."""

    def dependency(
        request: Request,
        user: Annotated[User | None, Depends(get_current_user_optional)],
    ) -> None:
        enforce_rate_limit(category, get_identifier(request, user.id if user else None))

    return dependency
