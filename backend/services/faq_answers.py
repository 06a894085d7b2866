"""
Static FAQ answers: a company FAQ whose keyword equals the normalized query answers directly.
"""
import logging
from typing import Optional

from db.faq_repository import faq_repository
from services.response_cache import normalize_query

logger = logging.getLogger("services.faq_answers")


async def find_static_answer(company_id: str, query: str) -> Optional[dict]:
    """Matching FAQ row, or None. Lookup failures count as no match."""
    keyword = normalize_query(query)
    if not keyword:
        return None
    try:
        return await faq_repository.find_by_keyword(company_id, keyword)
    except Exception as e:
        logger.warning(f"[FAQ] lookup failed: {e}")
        return None
