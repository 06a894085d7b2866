"""
Auth dependencies: resolve the current user (id, role, company) from a JWT or dev headers.
Authorization: Bearer <token> wins; without a token X-User-Id (+ X-User-Role / X-Company-Id) is accepted for development.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from db.user_repository import user_repository

from .config import dev_headers_enabled
from .jwt_utils import decode_token
from .roles import EMPLOYEE, has_role_access, is_platform_role, normalize_legacy_role

security = HTTPBearer(auto_error=False)
X_USER_ID_HEADER = "X-User-Id"
X_USER_ROLE_HEADER = "X-User-Role"
X_COMPANY_ID_HEADER = "X-Company-Id"


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str = EMPLOYEE
    company_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_platform(self) -> bool:
        return is_platform_role(self.role)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None, alias=X_USER_ID_HEADER),
    x_user_role: Optional[str] = Header(None, alias=X_USER_ROLE_HEADER),
    x_company_id: Optional[str] = Header(None, alias=X_COMPANY_ID_HEADER),
) -> CurrentUser:
    """JWT first, then dev headers; 401 without valid credentials."""
    # 1. JWT
    if credentials and credentials.credentials:
        payload = decode_token(credentials.credentials)
        if payload and "sub" in payload:
            try:
                user_id = int(payload["sub"])
            except (ValueError, TypeError):
                raise _unauthorized("Invalid or expired token")
            return CurrentUser(
                id=user_id,
                role=normalize_legacy_role(payload.get("role")) or EMPLOYEE,
                company_id=payload.get("company_id"),
                email=payload.get("email"),
            )
        raise _unauthorized("Invalid or expired token")

    # 2. dev headers
    if x_user_id and dev_headers_enabled():
        try:
            user_id = int(x_user_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="X-User-Id must be an integer")
        if x_user_role or x_company_id:
            return CurrentUser(
                id=user_id,
                role=normalize_legacy_role(x_user_role) or EMPLOYEE,
                company_id=x_company_id,
            )
        user = await user_repository.get_by_id(user_id)
        if not user:
            raise _unauthorized("Unknown user")
        return CurrentUser(
            id=user_id,
            role=normalize_legacy_role(user.get("role")) or EMPLOYEE,
            company_id=user.get("company_id"),
            email=user.get("email"),
        )

    raise _unauthorized("Authentication required: send Authorization: Bearer <token>")


def require_role(min_role: str):
    """Dependency factory: 403 unless the current user is at or above min_role."""

    async def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not has_role_access(user.role, min_role):
            raise HTTPException(status_code=403, detail=f"Requires role {min_role} or higher")
        return user

    return _dependency


def resolve_company_id(user: CurrentUser, requested: Optional[str] = None) -> str:
    """
    Company scope of a request. Platform roles may target any company (and must name one
    if they have none); everyone else is pinned to their own company.
    """
    if user.is_platform:
        company_id = requested or user.company_id
        if not company_id:
            raise HTTPException(status_code=400, detail="company_id is required")
        return company_id
    if not user.company_id:
        raise HTTPException(status_code=400, detail="User is not assigned to a company")
    if requested and requested != user.company_id:
        raise HTTPException(status_code=403, detail="Access to another company is not allowed")
    return user.company_id
