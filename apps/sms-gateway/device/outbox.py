"""SQLite-backed outbox of captured messages awaiting delivery."""
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from models.captured_event import CapturedEvent
from models.queue_item import QueueItem, QueueStatus, EnqueueResult, OutboxStats
from processors.fingerprint import fingerprint, canonical_timestamp, parse_timestamp
import logging

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500

SCHEMA = """
CREATE TABLE IF NOT EXISTS outbox (
    id TEXT PRIMARY KEY,
    sender TEXT NOT NULL,
    body TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    origin_slot INTEGER,
    content_hash TEXT NOT NULL,
    attempt_count INTEGER NOT NULL DEFAULT 0,
    next_attempt_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    last_error TEXT,
    last_status_code INTEGER,
    claimed_at TEXT,
    created_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS outbox_live_hash
    ON outbox (content_hash) WHERE status != 'abandoned';
CREATE INDEX IF NOT EXISTS outbox_due
    ON outbox (status, next_attempt_at);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Outbox:
    """Durable queue of outbound messages

    Survives process restarts; every read goes to the database so the
    scheduler always sees the current state. Timestamps are stored as
    canonical UTC strings, which sort chronologically.
    """

    def __init__(self, path: str = "outbox.sqlite3"):
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def close(self):
        """Close database connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def cursor(self):
        """Serialized cursor with auto-commit/rollback."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def enqueue(self, event: CapturedEvent, now: datetime = None) -> EnqueueResult:
        """Store an accepted event unless an identical one is already live"""
        now = now or utcnow()
        content_hash = fingerprint(event.sender, event.body, event.occurred_at)

        try:
            with self.cursor() as cur:
                cur.execute(
                    "SELECT id FROM outbox WHERE content_hash = ? AND status != ?",
                    (content_hash, QueueStatus.ABANDONED.value),
                )
                if cur.fetchone() is not None:
                    logger.debug(f"Outbox item already present {content_hash[:12]}...")
                    return EnqueueResult.DUPLICATE_IGNORED

                item_id = str(uuid.uuid4())
                cur.execute(
                    """
                    INSERT INTO outbox (
                        id, sender, body, occurred_at, origin_slot, content_hash,
                        attempt_count, next_attempt_at, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        item_id,
                        event.sender,
                        event.body,
                        canonical_timestamp(event.occurred_at),
                        event.origin_slot,
                        content_hash,
                        canonical_timestamp(now),
                        QueueStatus.PENDING.value,
                        canonical_timestamp(now),
                    ),
                )
        except sqlite3.IntegrityError:
            # Another thread enqueued the same hash between SELECT and INSERT
            logger.debug(f"Outbox item already present {content_hash[:12]}...")
            return EnqueueResult.DUPLICATE_IGNORED

        logger.info(f"Outbox enqueued {item_id} ({content_hash[:12]}...)")
        return EnqueueResult.ACCEPTED

    def due_items(self, now: datetime, limit: int = 50, max_attempts: int = 5) -> List[QueueItem]:
        """Pending items whose next attempt is due, oldest schedule first"""
        with self.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM outbox
                WHERE status = ?
                  AND next_attempt_at <= ?
                  AND attempt_count < ?
                ORDER BY next_attempt_at ASC
                LIMIT ?
                """,
                (QueueStatus.PENDING.value, canonical_timestamp(now), max_attempts, limit),
            )
            return [self._to_item(row) for row in cur.fetchall()]

    def mark_in_flight(self, item_id: str, now: datetime = None) -> bool:
        """Claim an item for delivery (atomic; False if someone else holds it)"""
        with self.cursor() as cur:
            cur.execute(
                """
                UPDATE outbox SET status = ?, claimed_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    QueueStatus.IN_FLIGHT.value,
                    canonical_timestamp(now or utcnow()),
                    item_id,
                    QueueStatus.PENDING.value,
                ),
            )
            return cur.rowcount == 1

    def record_success(self, item_id: str) -> None:
        """Delivery confirmed: the item leaves the outbox"""
        with self.cursor() as cur:
            cur.execute("DELETE FROM outbox WHERE id = ?", (item_id,))
        logger.info(f"Outbox delivered {item_id}")

    def record_failure(
        self,
        item_id: str,
        error: str,
        next_attempt_at: datetime,
        status_code: Optional[int] = None,
    ) -> None:
        """Count a failed attempt and put the item back in line"""
        with self.cursor() as cur:
            cur.execute(
                """
                UPDATE outbox
                SET status = ?,
                    attempt_count = attempt_count + 1,
                    next_attempt_at = ?,
                    last_error = ?,
                    last_status_code = ?,
                    claimed_at = NULL
                WHERE id = ?
                """,
                (
                    QueueStatus.PENDING.value,
                    canonical_timestamp(next_attempt_at),
                    (error or "")[:MAX_ERROR_LENGTH],
                    status_code,
                    item_id,
                ),
            )
        logger.warning(f"Outbox retry {item_id} at {canonical_timestamp(next_attempt_at)}: {error}")

    def abandon(self, item_id: str, reason: str, status_code: Optional[int] = None) -> None:
        """Move an item to the terminal abandoned state (kept for observability)"""
        with self.cursor() as cur:
            cur.execute(
                """
                UPDATE outbox
                SET attempt_count = attempt_count + CASE WHEN status = ? THEN 1 ELSE 0 END,
                    status = ?,
                    last_error = ?,
                    last_status_code = COALESCE(?, last_status_code),
                    claimed_at = NULL
                WHERE id = ?
                """,
                (
                    QueueStatus.IN_FLIGHT.value,
                    QueueStatus.ABANDONED.value,
                    (reason or "")[:MAX_ERROR_LENGTH],
                    status_code,
                    item_id,
                ),
            )
        logger.error(f"Outbox abandoned {item_id}: {reason}")

    def release_stale_claims(self) -> int:
        """Return items left in flight by a previous process to pending"""
        with self.cursor() as cur:
            cur.execute(
                "UPDATE outbox SET status = ?, claimed_at = NULL WHERE status = ?",
                (QueueStatus.PENDING.value, QueueStatus.IN_FLIGHT.value),
            )
            count = cur.rowcount
        if count > 0:
            logger.warning(f"Released {count} stale in-flight outbox items")
        return count

    def release_expired_claims(self, claimed_before: datetime) -> int:
        """Return in-flight items claimed before the cutoff to pending

        Covers claims whose outcome was never recorded while this process
        keeps running.
        """
        with self.cursor() as cur:
            cur.execute(
                """
                UPDATE outbox SET status = ?, claimed_at = NULL
                WHERE status = ? AND (claimed_at IS NULL OR claimed_at <= ?)
                """,
                (
                    QueueStatus.PENDING.value,
                    QueueStatus.IN_FLIGHT.value,
                    canonical_timestamp(claimed_before),
                ),
            )
            count = cur.rowcount
        if count > 0:
            logger.warning(f"Released {count} expired outbox claims")
        return count

    def get(self, item_id: str) -> Optional[QueueItem]:
        with self.cursor() as cur:
            cur.execute("SELECT * FROM outbox WHERE id = ?", (item_id,))
            row = cur.fetchone()
        return self._to_item(row) if row else None

    def stats(self) -> OutboxStats:
        """Pending / in-flight / abandoned counts"""
        with self.cursor() as cur:
            cur.execute("SELECT status, COUNT(*) AS n FROM outbox GROUP BY status")
            counts = {row["status"]: row["n"] for row in cur.fetchall()}
        return OutboxStats(
            pending=counts.get(QueueStatus.PENDING.value, 0),
            in_flight=counts.get(QueueStatus.IN_FLIGHT.value, 0),
            abandoned=counts.get(QueueStatus.ABANDONED.value, 0),
        )

    def _to_item(self, row: sqlite3.Row) -> QueueItem:
        return QueueItem(
            id=row["id"],
            sender=row["sender"],
            body=row["body"],
            occurred_at=parse_timestamp(row["occurred_at"]),
            origin_slot=row["origin_slot"],
            content_hash=row["content_hash"],
            attempt_count=row["attempt_count"],
            next_attempt_at=parse_timestamp(row["next_attempt_at"]),
            status=QueueStatus(row["status"]),
            last_error=row["last_error"],
            last_status_code=row["last_status_code"],
            claimed_at=parse_timestamp(row["claimed_at"]) if row["claimed_at"] else None,
            created_at=parse_timestamp(row["created_at"]),
        )
