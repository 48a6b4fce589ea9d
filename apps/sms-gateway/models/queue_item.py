from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class QueueStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    ABANDONED = "abandoned"


class EnqueueResult(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE_IGNORED = "duplicate_ignored"


class QueueItem(BaseModel):
    id: str
    sender: str
    body: str
    occurred_at: datetime
    origin_slot: Optional[int] = None
    content_hash: str
    attempt_count: int = 0
    next_attempt_at: datetime
    status: QueueStatus = QueueStatus.PENDING
    last_error: Optional[str] = None
    last_status_code: Optional[int] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OutboxStats(BaseModel):
    """Health signal for the relay: counts only, never message content"""
    pending: int = 0
    in_flight: int = 0
    abandoned: int = 0

    @property
    def live(self) -> int:
        return self.pending + self.in_flight
