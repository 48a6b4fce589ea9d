from pydantic_settings import BaseSettings


class RelaySettings(BaseSettings):
    """Settings for the on-device relay

    Built once by the relay bootstrap and passed to the outbox, transport and
    scheduler. Env vars use the RELAY_ prefix (e.g. RELAY_MAX_ATTEMPTS).
    """

    OUTBOX_PATH: str = "outbox.sqlite3"
    LOG_LEVEL: str = "INFO"

    # Retry Settings
    MAX_ATTEMPTS: int = 5
    BATCH_LIMIT: int = 50
    BASE_DELAY_SECONDS: int = 60
    MAX_BACKOFF_EXPONENT: int = 4  # 2^4 = 16x base delay
    MAX_WORKERS: int = 4
    SYNC_INTERVAL_SECONDS: int = 60
    CLAIM_LEASE_SECONDS: int = 600  # must exceed one batch of timed-out deliveries

    # Transport Settings
    INGEST_PATH: str = "/ingest"
    CONNECT_TIMEOUT_SECONDS: float = 15.0
    READ_TIMEOUT_SECONDS: float = 25.0

    class Config:
        env_prefix = "RELAY_"
        env_file = ".env"
        extra = "ignore"
