"""Authentication and authorization."""
from datetime import timedelta
from typing import Optional
import logging
import time
from uuid import UUID
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .models import User

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode.update({"exp": exp, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_token_for_user(user: User) -> str:
    return create_access_token({"sub": str(user.id), "ver": int(user.token_version or 0)})


def decode_token(token: str) -> dict:
    """Decode JWT token, allowing JWT_LEEWAY_SECONDS of clock skew on exp."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    try:
        exp_int = int(payload["exp"])
    except (KeyError, TypeError, ValueError):
        raise _credentials_error()
    if int(time.time()) > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error("Token expired")
    return payload


def _parse_token_subject(payload: dict) -> UUID:
    """Parse and validate JWT subject as UUID."""
    sub = payload.get("sub")
    if not sub:
        raise _credentials_error()
    try:
        return UUID(str(sub))
    except ValueError:
        raise _credentials_error()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user."""
    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type"
        )

    user_id = _parse_token_subject(payload)
    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    try:
        token_ver = int(payload.get("ver", 0))
    except (TypeError, ValueError):
        raise _credentials_error()
    if int(user.token_version or 0) != token_ver:
        raise _credentials_error("Token has been revoked")

    return user


# Permission checks
class PermissionChecker:
    """Check user permissions based on role."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: User = Depends(get_current_user)):
        """Check if user has required permission."""
        if not check_permission(current_user, self.required_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return current_user


# Role permissions matrix
ROLE_PERMISSIONS = {
    "admin": {
        "canViewAllWorkOrders": True,
        "canManageWorkOrders": True,
        "canReviewWorkOrders": True,
        "canDeleteWorkOrders": True,
        "canTrackTime": True,
    },
    "manager": {
        "canViewAllWorkOrders": True,
        "canManageWorkOrders": True,
        "canReviewWorkOrders": True,
        "canDeleteWorkOrders": True,
        "canTrackTime": True,
    },
    "tech": {
        "canViewAllWorkOrders": False,
        "canManageWorkOrders": False,
        "canReviewWorkOrders": False,
        "canDeleteWorkOrders": False,
        "canTrackTime": True,
    },
}


def check_permission(user: User, permission: str) -> bool:
    """Check if user has specific permission."""
    permissions = ROLE_PERMISSIONS.get(user.role, {})
    return permissions.get(permission, False)
