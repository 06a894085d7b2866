"""Database access layer"""
from .analytics_repository import analytics_repository, audit_repository
from .benefit_repository import benefit_plan_repository, enrollment_repository
from .company_repository import company_repository
from .conversation_repository import conversation_repository
from .faq_repository import faq_repository
from .message_repository import message_repository
from .user_repository import user_repository

__all__ = [
    "analytics_repository",
    "audit_repository",
    "benefit_plan_repository",
    "company_repository",
    "conversation_repository",
    "enrollment_repository",
    "faq_repository",
    "message_repository",
    "user_repository",
]
