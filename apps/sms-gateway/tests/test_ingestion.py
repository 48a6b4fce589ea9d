"""
Tests for IngestionService - idempotent ingestion with best-effort extraction

Runs against FakeDatabase (tests/fixtures/fake_database.py) with scripted
extraction providers, so no Supabase or Anthropic calls are made.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import Mock

import pytest

from models.device import DeviceCredential
from models.ingest import IngestStatus
from models.ingested_record import ParseStatus
from processors.fingerprint import fingerprint
from processors.transaction_extractor import TransactionExtractor
from services.database import RecordWriteError
from services.device_registry import DeviceRegistry
from services.ingestion import IngestionService
from tests.fixtures.fake_database import FakeDatabase
from tests.fixtures.fake_providers import ScriptedProvider, failing_provider
from tests.fixtures.sms_fixtures import (
    CREDIT_BODY,
    DEBIT_BODY,
    PROMO_BODY,
    DEVICE_ID,
    DEVICE_SECRET,
    MOMO_SENDER,
    RECEIVED_AT,
    sample_credential,
    sample_model_output,
    sample_request,
)


@pytest.fixture
def db():
    fake = FakeDatabase()
    fake.add_device(DEVICE_ID, DEVICE_SECRET, label="Shop phone")
    return fake


@pytest.fixture
def primary():
    return ScriptedProvider("primary-model", output=sample_model_output())


@pytest.fixture
def service(db, primary):
    return IngestionService(
        db=db,
        registry=DeviceRegistry(db),
        extractor=TransactionExtractor([primary]),
    )


class TestAccepted:

    def test_new_message_stored_and_parsed(self, service, db):
        result = service.ingest(sample_credential(), sample_request())

        assert result.status == IngestStatus.ACCEPTED
        assert result.parse_status == ParseStatus.PARSED
        assert result.model_used == "primary-model"

        row = db.records[result.id]
        assert row["body"] == CREDIT_BODY
        assert row["device_id"] == DEVICE_ID
        assert row["device_label"] == "Shop phone"
        assert row["content_hash"] == fingerprint(MOMO_SENDER, CREDIT_BODY, RECEIVED_AT)
        assert row["received_at"] == "2025-01-05T08:30:00.000Z"
        assert row["parse_status"] == "parsed"
        assert row["parse_attempts"] == 1
        assert row["amount"] == 5000.0
        assert row["currency"] == "RWF"
        assert row["ft_id"] == "1234567890"
        assert row["transaction_time"] == "2025-01-05T10:29:41+02:00"
        assert row["meta"]["model_used"] == "primary-model"
        assert row["raw_output"]["amount"] == "5,000"

    def test_request_label_overrides_registered_label(self, service, db):
        request = sample_request()
        request.device_label = "Back office"

        result = service.ingest(sample_credential(), request)
        assert db.records[result.id]["device_label"] == "Back office"

    def test_fallback_model_recorded(self, db):
        service = IngestionService(
            db=db,
            registry=DeviceRegistry(db),
            extractor=TransactionExtractor([
                failing_provider("primary-model"),
                ScriptedProvider("fallback-model", output=sample_model_output()),
            ]),
        )

        result = service.ingest(sample_credential(), sample_request())

        assert result.model_used == "fallback-model"
        assert db.records[result.id]["model_used"] == "fallback-model"


class TestDuplicates:

    def test_retry_returns_existing_record(self, service, db, primary):
        """The relay's first response was lost; the retry must not create a second row"""
        first = service.ingest(sample_credential(), sample_request())
        second = service.ingest(sample_credential(), sample_request())

        assert second.status == IngestStatus.DUPLICATE
        assert second.id == first.id
        assert second.parse_status == ParseStatus.PARSED
        assert len(db.records) == 1
        assert len(primary.prompts) == 1

    def test_different_timestamp_is_new_record(self, service, db):
        service.ingest(sample_credential(), sample_request())
        later = sample_request(received_at=RECEIVED_AT + timedelta(milliseconds=1))

        assert service.ingest(sample_credential(), later).status == IngestStatus.ACCEPTED
        assert len(db.records) == 2

    def test_concurrent_retries_persist_one_record(self, service, db):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda _: service.ingest(sample_credential(), sample_request()), range(8)
            ))

        assert len(db.records) == 1
        assert {r.id for r in results} == set(db.records)
        assert [r.status for r in results].count(IngestStatus.ACCEPTED) == 1
        assert all(r.status in (IngestStatus.ACCEPTED, IngestStatus.DUPLICATE) for r in results)

    def test_lost_insert_race_reports_winner(self, service, db):
        winner = db.insert_record({
            "device_id": DEVICE_ID,
            "body": CREDIT_BODY,
            "sender": MOMO_SENDER,
            "received_at": "2025-01-05T08:30:00.000Z",
            "content_hash": fingerprint(MOMO_SENDER, CREDIT_BODY, RECEIVED_AT),
            "parse_status": "pending",
        })
        # Lookup misses (the winner committed after it), insert hits the constraint
        service.db = Mock(wraps=db)
        service.db.get_record_by_hash.side_effect = [None, winner]

        result = service.ingest(sample_credential(), sample_request())

        assert result.status == IngestStatus.DUPLICATE
        assert result.id == winner.id

    def test_repeated_ft_id_marked_on_new_record(self, service, db):
        first = service.ingest(sample_credential(), sample_request())
        # Same transaction forwarded from another SIM slot a second later
        second = service.ingest(
            sample_credential(), sample_request(received_at=RECEIVED_AT + timedelta(seconds=1))
        )

        assert second.status == IngestStatus.ACCEPTED
        row = db.records[second.id]
        assert row["meta"]["duplicate_of"] == first.id
        assert row["ft_id"] is None
        assert db.records[first.id]["ft_id"] == "1234567890"


class TestSkipped:

    def test_unknown_sender_skipped(self, service, db):
        result = service.ingest(sample_credential(), sample_request(sender="PROMO"))

        assert result.status == IngestStatus.SKIPPED
        assert result.reason == "Filtered by sender"
        assert db.records == {}

    def test_non_transaction_body_skipped(self, service, db):
        result = service.ingest(sample_credential(), sample_request(body=PROMO_BODY))

        assert result.status == IngestStatus.SKIPPED
        assert result.reason == "Filtered by content"
        assert db.insert_calls == 0


class TestRejected:

    @pytest.mark.parametrize(
        "credential",
        [
            DeviceCredential(device_id=DEVICE_ID),
            DeviceCredential(device_secret=DEVICE_SECRET),
            DeviceCredential(device_id="  ", device_secret=DEVICE_SECRET),
        ],
    )
    def test_missing_credential_unauthorized(self, service, db, credential):
        result = service.ingest(credential, sample_request())

        assert result.status == IngestStatus.REJECTED
        assert result.unauthorized is True
        assert db.records == {}

    def test_missing_body_and_timestamp(self, service):
        request = sample_request(body="   ")
        request.received_at = None

        result = service.ingest(sample_credential(), request)

        assert result.status == IngestStatus.REJECTED
        assert result.unauthorized is False
        assert result.reason == "Missing body, received_at"

    @pytest.mark.parametrize(
        "credential,reason",
        [
            (DeviceCredential(device_id="stranger", device_secret=DEVICE_SECRET), "Unknown device"),
            (DeviceCredential(device_id=DEVICE_ID, device_secret="wrong"), "Invalid device secret"),
        ],
    )
    def test_bad_credentials(self, service, db, credential, reason):
        result = service.ingest(credential, sample_request())

        assert result.status == IngestStatus.REJECTED
        assert result.unauthorized is True
        assert result.reason == reason
        assert db.records == {}

    def test_disabled_device(self, service, db):
        db.add_device("old-phone", "pw", enabled=False)

        result = service.ingest(DeviceCredential(device_id="old-phone", device_secret="pw"), sample_request())

        assert result.status == IngestStatus.REJECTED
        assert result.reason == "Device disabled"


class TestExtractionFailure:

    def test_raw_record_kept_when_all_models_fail(self, db):
        service = IngestionService(
            db=db,
            registry=DeviceRegistry(db),
            extractor=TransactionExtractor([failing_provider("primary-model", "timeout")]),
        )

        result = service.ingest(sample_credential(), sample_request(body=DEBIT_BODY))

        assert result.status == IngestStatus.ACCEPTED
        assert result.parse_status == ParseStatus.FAILED
        row = db.records[result.id]
        assert row["body"] == DEBIT_BODY
        assert row["parse_status"] == "failed"
        assert "timeout" in row["parse_error"]
        assert row["parse_attempts"] == 1

    def test_rejected_result_write_marks_record_failed(self, service, db):
        """Storage refuses the extraction columns; the row must not stay pending"""
        db.failing_updates = 1

        result = service.ingest(sample_credential(), sample_request())

        assert result.status == IngestStatus.ACCEPTED
        assert result.parse_status == ParseStatus.FAILED
        row = db.records[result.id]
        assert row["parse_status"] == "failed"
        assert row["parse_attempts"] == 1
        assert "timestamp" in row["parse_error"]

    def test_reports_pending_when_no_update_can_be_stored(self, service, db):
        db.fail_updates = True

        result = service.ingest(sample_credential(), sample_request())

        assert result.status == IngestStatus.ACCEPTED
        assert result.parse_status == ParseStatus.PENDING
        assert db.records[result.id]["parse_status"] == "pending"

    def test_invalid_model_timestamp_not_stored(self, db):
        output = dict(sample_model_output(), transaction_time_raw="2025-13-45 99:99")
        service = IngestionService(
            db=db,
            registry=DeviceRegistry(db),
            extractor=TransactionExtractor([ScriptedProvider("primary-model", output=output)]),
        )

        result = service.ingest(sample_credential(), sample_request())

        row = db.records[result.id]
        assert result.parse_status == ParseStatus.PARSED
        assert row["transaction_time"] is None
        assert row["extracted"]["transaction_time_raw"] == "2025-13-45 99:99"


class TestStorageFailure:

    def test_write_failure_propagates(self, service, db):
        db.fail_inserts = True

        with pytest.raises(RecordWriteError):
            service.ingest(sample_credential(), sample_request())

    def test_status_counts(self, service):
        service.ingest(sample_credential(), sample_request())
        assert service.status_counts() == {"pending": 0, "parsed": 1, "failed": 0}
