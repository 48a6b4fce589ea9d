from supabase import create_client, Client
from postgrest.exceptions import APIError
from config import settings
from typing import Dict, Optional, Any
from models.ingested_record import IngestedRecord, ParseStatus
from models.device import DeviceKey
import logging

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class RecordWriteError(Exception):
    """Persisting a record failed; the caller should retry later"""


class DuplicateRecordError(RecordWriteError):
    """Insert lost a race against another insert with the same content hash"""


class DatabaseService:
    def __init__(self, client: Client = None):
        self.client: Client = client or create_client(
            settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY
        )
        self.messages_table = settings.MESSAGES_TABLE
        self.devices_table = settings.DEVICE_KEYS_TABLE

    # Ingested messages
    def get_record_by_hash(self, content_hash: str) -> Optional[IngestedRecord]:
        """Look up the record for a fingerprint (the dedup key)"""
        response = (
            self.client.table(self.messages_table)
            .select("*")
            .eq("content_hash", content_hash)
            .limit(1)
            .execute()
        )
        return IngestedRecord(**response.data[0]) if response.data else None

    def insert_record(self, record_data: Dict[str, Any]) -> IngestedRecord:
        """Insert a new record, return it with its generated ID

        Raises:
            DuplicateRecordError: content_hash already exists
            RecordWriteError: any other storage failure
        """
        try:
            response = self.client.table(self.messages_table).insert(record_data).execute()
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateRecordError(str(e)) from e
            raise RecordWriteError(str(e)) from e
        except Exception as e:
            raise RecordWriteError(str(e)) from e

        if not response.data:
            raise RecordWriteError("Insert returned no row")
        return IngestedRecord(**response.data[0])

    def update_record(self, record_id: str, updates: Dict[str, Any]):
        """Apply the extraction outcome to a record"""
        self.client.table(self.messages_table).update(updates).eq("id", record_id).execute()

    def find_record_id_by_ft_id(self, ft_id: str, exclude_id: str) -> Optional[str]:
        """Another record already carrying this FT id, if any"""
        response = (
            self.client.table(self.messages_table)
            .select("id")
            .eq("ft_id", ft_id)
            .neq("id", exclude_id)
            .limit(1)
            .execute()
        )
        return response.data[0]["id"] if response.data else None

    def count_by_parse_status(self) -> Dict[str, int]:
        """Record counts per parse status, for /status"""
        counts = {}
        for status in ParseStatus:
            response = (
                self.client.table(self.messages_table)
                .select("id", count="exact")
                .eq("parse_status", status.value)
                .execute()
            )
            counts[status.value] = response.count or 0
        return counts

    # Devices
    def get_device_key(self, device_id: str) -> Optional[DeviceKey]:
        """Get registered device by ID"""
        response = (
            self.client.table(self.devices_table)
            .select("device_id, device_label, secret_hash, enabled")
            .eq("device_id", device_id)
            .limit(1)
            .execute()
        )
        return DeviceKey(**response.data[0]) if response.data else None

    def upsert_device_key(self, device_data: Dict[str, Any]):
        """Create or replace a device registration"""
        self.client.table(self.devices_table).upsert(device_data).execute()
