from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Reader(BaseModel):
    """An authenticated reader; streak data is keyed by user_id."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: datetime
    last_seen_at: Optional[datetime] = None
