# Models module - Pydantic models for the relay queue and the ingestion tables
from models.captured_event import CapturedEvent
from models.queue_item import QueueItem, QueueStatus, EnqueueResult, OutboxStats
from models.ingested_record import IngestedRecord, ParseStatus
from models.ingest import IngestRequest, IngestResponse, IngestResult, IngestStatus
from models.extraction import ExtractedTransaction, ExtractionResult
from models.device import DeviceKey, DeviceCredential
from models.delivery import DeliveryOutcome, OutcomeKind, CycleReport

__all__ = [
    "CapturedEvent",
    "QueueItem",
    "QueueStatus",
    "EnqueueResult",
    "OutboxStats",
    "IngestedRecord",
    "ParseStatus",
    "IngestRequest",
    "IngestResponse",
    "IngestResult",
    "IngestStatus",
    "ExtractedTransaction",
    "ExtractionResult",
    "DeviceKey",
    "DeviceCredential",
    "DeliveryOutcome",
    "OutcomeKind",
    "CycleReport",
]
