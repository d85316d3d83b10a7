import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dogtraining.auth import jwt_handler
from dogtraining.core.errors import ForbiddenError, UnauthenticatedError
from dogtraining.database import get_db
from dogtraining.models.user import User

security = HTTPBearer(auto_error=False)


def _resolve_user(credentials: HTTPAuthorizationCredentials, db: Session) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise ForbiddenError("Invalid or expired token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise ForbiddenError("Invalid or expired token")

    user = db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise UnauthenticatedError("Access token required")
    return _resolve_user(credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    return _resolve_user(credentials, db)


def require_owner(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_owner:
        raise ForbiddenError("Owner access required")
    return current_user


def ensure_owner_or_self(actor: User, resource_owner_id: str, message: str = "Forbidden") -> None:
    """Single authorization rule: owners may touch anything, everyone else only their own."""
    if actor.is_owner or actor.id == resource_owner_id:
        return
    raise ForbiddenError(message)
