from services.database import DatabaseService
from models.device import DeviceCredential, DeviceKey
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


class DeviceAuthError(Exception):
    """The presented credential does not identify an enabled device"""


def hash_secret(secret: str) -> str:
    """Hex sha256 of a device secret, the form stored in device_keys"""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class DeviceRegistry:
    """Authenticates relays against the device_keys table"""

    def __init__(self, db: DatabaseService = None):
        self.db = db or DatabaseService()

    def authenticate(self, credential: DeviceCredential) -> DeviceKey:
        """Return the registered device for a credential

        Raises:
            DeviceAuthError: missing credential, unknown or disabled device,
                or wrong secret
        """
        if not credential.is_complete:
            raise DeviceAuthError("Missing device credential")

        device_id = credential.device_id.strip()
        device = self.db.get_device_key(device_id)

        if not device:
            logger.warning(f"Rejected unknown device: {device_id}")
            raise DeviceAuthError("Unknown device")
        if not device.enabled:
            logger.warning(f"Rejected disabled device: {device_id}")
            raise DeviceAuthError("Device disabled")

        given_hash = hash_secret(credential.device_secret.strip())
        if not hmac.compare_digest(given_hash, device.secret_hash.lower()):
            logger.warning(f"Rejected invalid secret for device: {device_id}")
            raise DeviceAuthError("Invalid device secret")

        return device
