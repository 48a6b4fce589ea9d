from services.database import DatabaseService, DuplicateRecordError
from services.device_registry import DeviceRegistry, DeviceAuthError
from processors.content_filter import ContentFilter, content_filter
from processors.fingerprint import fingerprint, canonical_timestamp
from processors.transaction_extractor import TransactionExtractor, ExtractionError
from models.device import DeviceCredential
from models.ingest import IngestRequest, IngestResult, IngestStatus
from models.ingested_record import IngestedRecord, ParseStatus
from typing import Dict, Any
import logging
import time

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class IngestionService:
    """Idempotent ingestion of SMS events forwarded by relays

    Pipeline Steps:
    1. Validate required fields
    2. Re-apply the content filter (non-matching events are skipped, not rejected)
    3. Authenticate the device
    4. Fingerprint and look up an existing record
    5. Persist the raw event with parse_status=pending
    6. Extract structured fields and update the record
    7. Respond

    Steps 1-3 are hard rejections. A failed write in step 5 propagates as
    RecordWriteError so the relay retries. Extraction failures never fail
    ingestion.
    """

    def __init__(
        self,
        db: DatabaseService = None,
        registry: DeviceRegistry = None,
        extractor: TransactionExtractor = None,
        message_filter: ContentFilter = None,
    ):
        self.db = db or DatabaseService()
        self.registry = registry or DeviceRegistry(self.db)
        self.extractor = extractor or TransactionExtractor()
        self.filter = message_filter or content_filter

    def ingest(self, credential: DeviceCredential, request: IngestRequest) -> IngestResult:
        start_time = time.time()

        # Step 1: Validate
        missing = self._missing_fields(credential, request)
        if missing:
            logger.info(f"Rejected ingest request, missing: {', '.join(missing)}")
            return IngestResult(
                status=IngestStatus.REJECTED,
                reason=f"Missing {', '.join(missing)}",
                unauthorized=not credential.is_complete,
            )

        # Step 2: Server-side filter
        rejection = self.filter.rejection_reason(request.sender, request.body)
        if rejection:
            logger.info(f"Skipped message from {request.sender!r}: {rejection} filter")
            return IngestResult(status=IngestStatus.SKIPPED, reason=f"Filtered by {rejection}")

        # Step 3: Device auth
        try:
            device = self.registry.authenticate(credential)
        except DeviceAuthError as e:
            return IngestResult(status=IngestStatus.REJECTED, reason=str(e), unauthorized=True)

        # Step 4: Fingerprint + dedup
        content_hash = fingerprint(request.sender, request.body, request.received_at)
        existing = self.db.get_record_by_hash(content_hash)
        if existing:
            logger.info(f"Duplicate delivery of {content_hash[:12]}... -> {existing.id}")
            return self._duplicate(existing)

        # Step 5: Persist raw event
        record_data = {
            "device_id": device.device_id,
            "device_label": request.device_label or device.device_label,
            "origin_slot": request.origin_slot,
            "sender": request.sender,
            "body": request.body,
            "received_at": canonical_timestamp(request.received_at),
            "content_hash": content_hash,
            "parse_status": ParseStatus.PENDING.value,
            "parse_attempts": 0,
            "meta": request.meta or {},
        }
        try:
            record = self.db.insert_record(record_data)
        except DuplicateRecordError:
            # A concurrent retry inserted first; report its record
            winner = self.db.get_record_by_hash(content_hash)
            if winner is None:
                raise
            logger.info(f"Lost insert race for {content_hash[:12]}... -> {winner.id}")
            return self._duplicate(winner)

        logger.info(f"Stored message {record.id} from device {device.device_id}")

        # Step 6: Extraction (best effort)
        parse_status, model_used = self._extract_and_update(record, request)

        logger.info(
            f"Ingested {record.id} in {time.time() - start_time:.2f}s (parse_status={parse_status.value})"
        )

        # Step 7: Respond
        return IngestResult(
            status=IngestStatus.ACCEPTED,
            id=record.id,
            parse_status=parse_status,
            model_used=model_used,
        )

    def _missing_fields(self, credential: DeviceCredential, request: IngestRequest):
        missing = []
        if not (credential.device_id or "").strip():
            missing.append("device_id")
        if not (credential.device_secret or "").strip():
            missing.append("device_secret")
        if not (request.body or "").strip():
            missing.append("body")
        if request.received_at is None:
            missing.append("received_at")
        return missing

    def _duplicate(self, record: IngestedRecord) -> IngestResult:
        return IngestResult(
            status=IngestStatus.DUPLICATE,
            id=record.id,
            parse_status=record.parse_status,
            model_used=record.model_used,
        )

    def _extract_and_update(self, record: IngestedRecord, request: IngestRequest):
        """Run extraction once and record the outcome on the stored row"""
        updates: Dict[str, Any]
        try:
            result = self.extractor.extract(request.sender, request.body)
            fields = result.fields.model_dump(mode="json")
            meta = dict(record.meta or {})
            meta["model_used"] = result.model_used

            ft_id = fields.get("ft_id")
            if ft_id:
                duplicate_of = self.db.find_record_id_by_ft_id(ft_id, record.id)
                if duplicate_of:
                    logger.warning(f"Record {record.id} repeats ft_id of {duplicate_of}")
                    meta["duplicate_of"] = duplicate_of
                    ft_id = None

            updates = {
                "parse_status": ParseStatus.PARSED.value,
                "parse_attempts": record.parse_attempts + 1,
                "parse_error": None,
                "extracted": fields,
                "raw_output": result.raw,
                "model_used": result.model_used,
                "meta": meta,
                "amount": fields.get("amount"),
                "currency": fields.get("currency"),
                "counterparty": fields.get("counterparty"),
                "txn_id": fields.get("txn_id"),
                "ft_id": ft_id,
                "transaction_time": fields.get("transaction_time"),
            }
            parse_status, model_used = ParseStatus.PARSED, result.model_used
        except ExtractionError as e:
            logger.warning(f"Extraction failed for {record.id}: {e}")
            updates = {
                "parse_status": ParseStatus.FAILED.value,
                "parse_attempts": record.parse_attempts + 1,
                "parse_error": str(e)[:MAX_ERROR_LENGTH],
            }
            parse_status, model_used = ParseStatus.FAILED, None
        except Exception as e:
            logger.error(f"Unexpected extraction error for {record.id}: {e}", exc_info=True)
            updates = {
                "parse_status": ParseStatus.FAILED.value,
                "parse_attempts": record.parse_attempts + 1,
                "parse_error": str(e)[:MAX_ERROR_LENGTH],
            }
            parse_status, model_used = ParseStatus.FAILED, None

        try:
            self.db.update_record(record.id, updates)
            return parse_status, model_used
        except Exception as e:
            logger.error(f"Failed to store extraction result for {record.id}: {e}", exc_info=True)
            store_error = str(e)

        # Record the failure with only the status columns so the row leaves pending
        try:
            self.db.update_record(
                record.id,
                {
                    "parse_status": ParseStatus.FAILED.value,
                    "parse_attempts": record.parse_attempts + 1,
                    "parse_error": f"Storing extraction result failed: {store_error}"[:MAX_ERROR_LENGTH],
                },
            )
            return ParseStatus.FAILED, None
        except Exception as e:
            # The raw event is already durable; the parse can be redone from it
            logger.error(f"Failed to mark {record.id} as failed: {e}", exc_info=True)
            return ParseStatus.PENDING, None

    def status_counts(self) -> Dict[str, int]:
        return self.db.count_by_parse_status()
