from enum import Enum
from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class ParseStatus(str, Enum):
    PENDING = "pending"
    PARSED = "parsed"
    FAILED = "failed"


class IngestedRecord(BaseModel):
    id: str
    device_id: str
    device_label: Optional[str] = None
    origin_slot: Optional[int] = None
    sender: Optional[str] = None
    body: str  # raw text, stored verbatim
    received_at: datetime
    content_hash: str
    parse_status: ParseStatus = ParseStatus.PENDING
    parse_attempts: int = 0
    parse_error: Optional[str] = None
    extracted: Optional[Dict[str, Any]] = None
    raw_output: Optional[Dict[str, Any]] = None  # model output before coercion, kept for correction
    model_used: Optional[str] = None
    meta: Dict[str, Any] = {}
    ingested_at: Optional[datetime] = None

    class Config:
        from_attributes = True
