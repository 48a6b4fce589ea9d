from enum import Enum
from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime

from models.ingested_record import ParseStatus


class IngestRequest(BaseModel):
    """JSON body of POST /ingest"""
    sender: Optional[str] = None
    body: Optional[str] = None
    received_at: Optional[datetime] = None
    origin_slot: Optional[int] = None
    device_label: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class IngestStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    REJECTED = "rejected"


class IngestResult(BaseModel):
    status: IngestStatus
    id: Optional[str] = None
    parse_status: Optional[ParseStatus] = None
    reason: Optional[str] = None
    model_used: Optional[str] = None
    unauthorized: bool = False  # rejection caused by device authentication


class IngestResponse(BaseModel):
    """Wire response shared by the endpoint and the relay transport"""
    ok: bool
    id: Optional[str] = None
    duplicate: bool = False
    parse_status: Optional[ParseStatus] = None
    skipped: bool = False
    reason: Optional[str] = None
    model_used: Optional[str] = None

    @classmethod
    def from_result(cls, result: IngestResult) -> "IngestResponse":
        return cls(
            ok=result.status != IngestStatus.REJECTED,
            id=result.id,
            duplicate=result.status == IngestStatus.DUPLICATE,
            parse_status=result.parse_status,
            skipped=result.status == IngestStatus.SKIPPED,
            reason=result.reason,
            model_used=result.model_used,
        )
