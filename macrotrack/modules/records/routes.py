from fastapi import APIRouter, Depends, Query
from supabase import AsyncClient
from typing import Any, Dict, Optional

from macrotrack.core.dependencies import get_identity_binder, get_supabase_client
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.records.schemas import RecordCreate, RecordListResponse
from macrotrack.modules.records.service import RecordService

router = APIRouter(prefix="/records", tags=["records"])


def get_record_service(
    supabase: AsyncClient = Depends(get_supabase_client),
    binder: IdentityBinder = Depends(get_identity_binder),
) -> RecordService:
    return RecordService(supabase, binder)


@router.get("/{table}", response_model=RecordListResponse)
async def list_records(
    table: str,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    ascending: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: RecordService = Depends(get_record_service)
):
    """List the caller's rows in a table (search matches user_email or user_id)"""
    records = await service.list_records(table, search=search, sort=sort, ascending=ascending, limit=limit, offset=offset)
    return RecordListResponse(table=table, records=records, count=len(records))


@router.post("/{table}", status_code=201)
async def create_record(
    table: str,
    body: RecordCreate,
    service: RecordService = Depends(get_record_service)
) -> Dict[str, Any]:
    """Insert a row owned by the caller"""
    return await service.create_record(table, body.data, require_auth=body.require_auth)
