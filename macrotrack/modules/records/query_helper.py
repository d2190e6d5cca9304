"""
Safe PostgREST filter builders.

Search terms are never spliced into .or() expressions: emails and UUIDs use
exact matches, everything else an escaped ilike on user_email. Every helper
returns the query unchanged on bad input instead of raising.
"""
import logging
import re
from typing import Any, Optional

from macrotrack.config.tables_config import SORTABLE_FIELDS

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE
)
_LIKE_SPECIALS = re.compile(r"([%_\\])")

MAX_LIMIT = 1000
DEFAULT_LIMIT = 100


def is_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_RE.match(value) is not None


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and UUID_RE.match(value) is not None


def escape_like(term: str) -> str:
    return _LIKE_SPECIALS.sub(r"\\\1", term)


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class QueryHelper:
    @staticmethod
    def apply_search_filter(query, search_term: Optional[str], table_name: str = ""):
        if not search_term or query is None:
            return query
        try:
            if is_email(search_term):
                logger.debug(f"Applying email search for '{search_term}' on table '{table_name}'")
                return query.eq("user_email", search_term)
            if is_uuid(search_term):
                return query.eq("user_id", search_term)

            safe_term = escape_like(search_term)
            logger.debug(f"Applying text search for '{safe_term}' on table '{table_name}'")
            return query.ilike("user_email", f"%{safe_term}%")
        except Exception as e:
            logger.error(f"Error in apply_search_filter for '{search_term}' on '{table_name}': {e}")
            return query

    @staticmethod
    def filter_by_user_id(query, user_id: Optional[str]):
        if not user_id or query is None:
            return query
        if not is_uuid(user_id):
            logger.warning(f"Invalid UUID format: {user_id}")
            return query
        return query.eq("user_id", user_id)

    @staticmethod
    def filter_by_email(query, email: Optional[str], column: str = "user_email"):
        if not email or query is None:
            return query
        if not is_email(email):
            logger.warning(f"Invalid email format: {email}")
            return query
        return query.eq(column, email)

    @staticmethod
    def apply_pagination(query, limit: Any = None, offset: Any = None):
        if query is None:
            return query

        page_size = max(min(_to_int(limit, DEFAULT_LIMIT) or DEFAULT_LIMIT, MAX_LIMIT), 1)
        if limit:
            query = query.limit(page_size)
        if offset:
            start = max(_to_int(offset, 0), 0)
            query = query.range(start, start + page_size - 1)
        return query

    @staticmethod
    def apply_sorting(query, sort_field: Optional[str], ascending: bool = False):
        if query is None or not sort_field:
            return query
        if sort_field in SORTABLE_FIELDS:
            return query.order(sort_field, desc=not ascending)
        logger.warning(f"Unsupported sort field: {sort_field}")
        return query.order("created_at", desc=True)
