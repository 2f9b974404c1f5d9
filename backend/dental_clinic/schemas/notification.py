from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    kind: str
    message: str
    payload: Optional[dict] = None
    target_user_id: Optional[int] = None
    target_role: Optional[str] = None
    read_at: Optional[datetime] = None
