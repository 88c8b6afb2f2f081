"""Bearer JWT authentication and role checks"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from matching_income.api.errors import http_error
from matching_income.config import settings
from matching_income.domain.exceptions import AuthError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, passed explicitly to every handler that needs it"""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def create_access_token(user_id: str, role: str = "user", expires_minutes: Optional[int] = None) -> str:
    """Issue a signed access token (used by tooling and tests; login lives in the user service)"""
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    claims = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    """
    Validate a bearer token.

    Raises:
        AuthError: expired, malformed or missing the subject claim
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthError("Token expired") from None
    except JWTError:
        raise AuthError("Invalid token") from None

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token")
    return Principal(user_id=user_id, role=payload.get("role", "user"))


def principal_from_header(authorization: Optional[str]) -> Principal:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Not authenticated")
    return decode_access_token(authorization[len("Bearer "):].strip())


def ensure_can_view(principal: Principal, user_id: str) -> None:
    """Members read only their own data; admins read anyone's"""
    if not principal.is_admin and principal.user_id != user_id:
        raise AuthError("Not authorized to view this member", forbidden=True)


def get_current_principal(authorization: Optional[str] = Header(None)) -> Principal:
    """Dependency: authenticated caller"""
    try:
        return principal_from_header(authorization)
    except AuthError as e:
        raise http_error(e)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency: authenticated caller with the admin role"""
    if not principal.is_admin:
        raise http_error(AuthError("Admin role required", forbidden=True))
    return principal


def acting_admin(principal: Principal, claimed_admin_id: Optional[str]) -> str:
    """Admin id stamped on a decision; a body admin_id must name the caller"""
    if claimed_admin_id is not None and claimed_admin_id != principal.user_id:
        raise AuthError("admin_id does not match the authenticated admin", forbidden=True)
    return principal.user_id
