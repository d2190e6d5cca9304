import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from macrotrack.config.tables_config import IDENTITY_SCOPED_TABLES
from macrotrack.modules.identity.binder import IdentityBinder, is_no_match_filter
from macrotrack.modules.records.query_helper import QueryHelper
from macrotrack.modules.records.table_validator import TableNameValidator, table_validator

logger = logging.getLogger(__name__)


class RecordService:
    """Reads and writes rows owned by the caller in identity-scoped tables"""

    def __init__(self, supabase, binder: IdentityBinder, validator: Optional[TableNameValidator] = None):
        self.supabase = supabase
        self.binder = binder
        self.validator = validator or table_validator

    def _scoped_table(self, table: str) -> str:
        # InvalidTableName and the identity errors are mapped to 400/401 by the app handlers
        name = self.validator.safe_table(table)
        if name not in IDENTITY_SCOPED_TABLES:
            raise HTTPException(status_code=400, detail=f"Table '{name}' does not hold user records")
        return name

    async def list_records(
        self,
        table: str,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        ascending: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Rows owned by the caller; empty when there is no identity"""
        name = self._scoped_table(table)
        query_filter = await self.binder.build_query_filter(allow_anonymous=self.binder.anonymous_allowed)
        if is_no_match_filter(query_filter):
            # "no-user" would fail the uuid cast in PostgREST; it matches nothing anyway
            return []

        try:
            query = self.supabase.table(name).select("*")
            for column, value in query_filter.items():
                query = query.eq(column, value)
            query = QueryHelper.apply_search_filter(query, search, name)
            query = QueryHelper.apply_sorting(query, sort or "created_at", ascending)
            query = QueryHelper.apply_pagination(query, limit, offset)
            result = await query.execute()
        except Exception as e:
            logger.error(f"Error listing {name}: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return result.data or []

    async def create_record(self, table: str, data: Dict[str, Any], require_auth: bool = False) -> Dict[str, Any]:
        name = self._scoped_table(table)
        payload = await self.binder.build_identified_payload(data, require_auth=require_auth)

        try:
            result = await self.supabase.table(name).insert([payload]).execute()
        except Exception as e:
            logger.error(f"Error creating {name} record: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if not result.data:
            raise HTTPException(status_code=500, detail=f"Failed to create {name} record")
        return result.data[0]
