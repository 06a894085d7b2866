"""JWT settings, read from environment variables"""
import os


def get_jwt_secret() -> str:
    """Signing secret; production must set a strong JWT_SECRET."""
    secret = os.getenv("JWT_SECRET")
    if not secret or len(secret) < 16:
        return "dev-secret-change-in-production-32bytes"
    return secret


def get_jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def get_jwt_expire_seconds() -> int:
    try:
        return int(os.getenv("JWT_EXPIRE_SECONDS", "86400"))  # 24h
    except ValueError:
        return 86400


def dev_headers_enabled() -> bool:
    """X-User-Id style headers are accepted unless AUTH_ALLOW_DEV_HEADERS=false."""
    return os.getenv("AUTH_ALLOW_DEV_HEADERS", "true").lower() in ("true", "1", "yes")
