"""
Compliance audit trail. Writes never propagate errors to the caller.
"""
import logging
from typing import Any, Optional

from db.analytics_repository import audit_repository

logger = logging.getLogger("services.audit")


async def log_event(
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    user_id: Optional[int] = None,
    user_email: Optional[str] = None,
    user_role: Optional[str] = None,
    company_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    success: bool = True,
    error_message: Optional[str] = None,
) -> Optional[int]:
    """Insert an audit_logs row; returns its id, or None when the write failed."""
    try:
        return await audit_repository.insert(
            action=action,
            resource_type=resource_type,
            resource_id=None if resource_id is None else str(resource_id),
            user_id=user_id,
            user_email=user_email,
            user_role=user_role,
            company_id=company_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            error_message=error_message,
        )
    except Exception as e:
        logger.error(f"[Audit] failed to log {action} on {resource_type}/{resource_id}: {e}")
        return None


async def log_user_action(
    user,
    action: str,
    resource_type: str,
    resource_id=None,
    details=None,
    request=None,
    company_id: Optional[str] = None,
) -> None:
    """log_event filled from a CurrentUser and an optional fastapi Request; company_id overrides the user's own."""
    ip_address = None
    user_agent = None
    if request is not None:
        ip_address = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")
    await log_event(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        user_id=user.id,
        user_email=user.email,
        user_role=user.role,
        company_id=company_id or user.company_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )


async def list_audit_logs(
    company_id: str,
    limit: int = 50,
    offset: int = 0,
    action: Optional[str] = None,
) -> list[dict[str, Any]]:
    return await audit_repository.list_by_company(company_id, limit=limit, offset=offset, action=action)
