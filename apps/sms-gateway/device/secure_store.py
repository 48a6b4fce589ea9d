from typing import Dict, Optional
import os
import threading

DEVICE_ID = "device_id"
DEVICE_SECRET = "device_secret"
ENDPOINT_URL = "endpoint_url"

REQUIRED_KEYS = (DEVICE_ID, DEVICE_SECRET, ENDPOINT_URL)


class SecureStore:
    """Key-value store for device credentials

    The platform keystore lives outside this package; the relay only needs
    get(). Values are read at delivery time, so a credential change applies
    to the next attempt.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: Optional[str]) -> None:
        raise NotImplementedError

    def missing_keys(self):
        """Required keys that are absent or blank"""
        return [key for key in REQUIRED_KEYS if not (self.get(key) or "").strip()]


class InMemorySecureStore(SecureStore):
    def __init__(self, values: Dict[str, str] = None):
        self._values: Dict[str, str] = dict(values or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        with self._lock:
            if value is None:
                self._values.pop(key, None)
            else:
                self._values[key] = value

    @classmethod
    def from_env(cls, prefix: str = "RELAY_") -> "InMemorySecureStore":
        """Load credentials from RELAY_DEVICE_ID, RELAY_DEVICE_SECRET, RELAY_ENDPOINT_URL"""
        values = {}
        for key in REQUIRED_KEYS:
            value = os.getenv(f"{prefix}{key.upper()}")
            if value:
                values[key] = value
        return cls(values)
