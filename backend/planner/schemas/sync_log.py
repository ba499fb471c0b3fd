from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SyncLogOut(BaseModel):
    log_id: int
    sync_type: str
    target_year: int
    target_month: int
    document_count: int
    product_count: int
    products_with_sales_count: int
    message: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SyncHistoryOut(BaseModel):
    logs: List[SyncLogOut]
    total: int
    limit: int
    offset: int
