from pydantic import BaseModel
from typing import Any, Dict, List


class RecordCreate(BaseModel):
    data: Dict[str, Any]
    # Authenticated users only; guests are rejected even in guest mode
    require_auth: bool = False


class RecordListResponse(BaseModel):
    table: str
    records: List[Dict[str, Any]]
    count: int
