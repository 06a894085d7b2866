"""Auth: JWT issuing/verification, current-user dependency and role hierarchy"""
from .dependencies import CurrentUser, get_current_user, require_role, resolve_company_id
from .jwt_utils import create_access_token, decode_token

__all__ = [
    "CurrentUser",
    "create_access_token",
    "decode_token",
    "get_current_user",
    "require_role",
    "resolve_company_id",
]
