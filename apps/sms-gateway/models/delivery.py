from enum import Enum
from pydantic import BaseModel
from typing import Optional

from models.ingest import IngestResponse


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class DeliveryOutcome(BaseModel):
    kind: OutcomeKind
    reason: Optional[str] = None
    status_code: Optional[int] = None
    response: Optional[IngestResponse] = None

    @classmethod
    def success(cls, status_code: int = None, response: IngestResponse = None):
        return cls(kind=OutcomeKind.SUCCESS, status_code=status_code, response=response)

    @classmethod
    def retryable(cls, reason: str, status_code: int = None):
        return cls(kind=OutcomeKind.RETRYABLE, reason=reason, status_code=status_code)

    @classmethod
    def terminal(cls, reason: str, status_code: int = None):
        return cls(kind=OutcomeKind.TERMINAL, reason=reason, status_code=status_code)


class CycleReport(BaseModel):
    """Outcome counts of one scheduler cycle"""
    due: int = 0
    claimed: int = 0
    delivered: int = 0
    retried: int = 0
    abandoned: int = 0
