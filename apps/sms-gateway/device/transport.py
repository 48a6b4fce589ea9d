import requests
from pydantic import ValidationError

from device.relay_config import RelaySettings
from device.secure_store import SecureStore, DEVICE_ID, DEVICE_SECRET, ENDPOINT_URL
from models.delivery import DeliveryOutcome
from models.ingest import IngestResponse
from models.queue_item import QueueItem
from processors.fingerprint import canonical_timestamp
import logging

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429}


class DeliveryTransport:
    """One HTTP delivery attempt of an outbox item to the ingest endpoint

    Never raises for network or HTTP problems; every attempt is classified
    as success, retryable or terminal so the scheduler can decide.
    """

    def __init__(
        self,
        secure_store: SecureStore,
        config: RelaySettings = None,
        session: requests.Session = None,
    ):
        self.secure_store = secure_store
        self.config = config or RelaySettings()
        self.session = session or requests.Session()

    def deliver(self, item: QueueItem) -> DeliveryOutcome:
        missing = self.secure_store.missing_keys()
        if missing:
            # Retrying cannot fix configuration
            logger.error(f"Relay not configured, missing: {', '.join(missing)}")
            return DeliveryOutcome.terminal(f"not configured: missing {', '.join(missing)}")

        url = self.secure_store.get(ENDPOINT_URL).strip().rstrip("/") + self.config.INGEST_PATH
        headers = {
            "Content-Type": "application/json",
            "X-Device-Id": self.secure_store.get(DEVICE_ID).strip(),
            "X-Device-Secret": self.secure_store.get(DEVICE_SECRET).strip(),
        }
        payload = {
            "sender": item.sender,
            "body": item.body,
            "received_at": canonical_timestamp(item.occurred_at),
            "origin_slot": item.origin_slot,
        }

        try:
            response = self.session.post(
                url,
                json=payload,
                headers=headers,
                timeout=(self.config.CONNECT_TIMEOUT_SECONDS, self.config.READ_TIMEOUT_SECONDS),
            )
        except requests.exceptions.Timeout as e:
            logger.warning(f"Delivery of {item.id} timed out: {e}")
            return DeliveryOutcome.retryable(f"timeout: {e}")
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Delivery of {item.id} could not connect: {e}")
            return DeliveryOutcome.retryable(f"connection error: {e}")
        except requests.exceptions.RequestException as e:
            logger.warning(f"Delivery of {item.id} failed: {e}")
            return DeliveryOutcome.retryable(f"request error: {e}")

        return self.classify(response)

    def classify(self, response: requests.Response) -> DeliveryOutcome:
        """Map an HTTP response to a delivery outcome"""
        status = response.status_code

        if 200 <= status < 300:
            return DeliveryOutcome.success(status_code=status, response=self._parse_body(response))

        detail = self._error_detail(response)
        reason = f"HTTP {status}: {detail}" if detail else f"HTTP {status}"

        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            return DeliveryOutcome.retryable(reason, status_code=status)
        return DeliveryOutcome.terminal(reason, status_code=status)

    def _parse_body(self, response: requests.Response):
        try:
            return IngestResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.debug("Ingest response body was not a recognised JSON payload")
            return None

    def _error_detail(self, response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            for key in ("detail", "error"):
                if data.get(key):
                    return str(data[key])[:200]
        return (response.text or "").strip()[:200]
