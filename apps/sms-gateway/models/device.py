from pydantic import BaseModel
from typing import Optional


class DeviceKey(BaseModel):
    device_id: str
    device_label: Optional[str] = None
    secret_hash: str  # hex sha256 of the device secret
    enabled: bool = True

    class Config:
        from_attributes = True


class DeviceCredential(BaseModel):
    """Credential presented by a relay on each request"""
    device_id: Optional[str] = None
    device_secret: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool((self.device_id or "").strip() and (self.device_secret or "").strip())
