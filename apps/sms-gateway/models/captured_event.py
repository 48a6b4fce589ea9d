from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class CapturedEvent(BaseModel):
    """A message handed over by the event source, multi-part bodies already merged"""
    sender: str
    body: str
    occurred_at: datetime
    origin_slot: Optional[int] = None  # SIM slot, when the platform reports one
