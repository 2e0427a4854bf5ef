from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class URLMapping(BaseModel):
    code: str
    original_url: str
    clicks: int = 0
    created_at: datetime
    last_accessed: Optional[datetime] = None


class URLPage(BaseModel):
    items: List[URLMapping]
    total: int
    limit: int
    offset: int
