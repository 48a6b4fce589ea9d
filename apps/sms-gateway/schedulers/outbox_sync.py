"""
Outbox Sync Scheduler

Drains the relay outbox on a recurring interval:
- Returns claims older than the lease to pending
- Selects due pending items (oldest schedule first, bounded batch)
- Claims each one (pending -> in_flight) so no item is sent twice at once
- Delivers claimed items in parallel on a bounded worker pool
- Records each outcome: delivered, rescheduled with backoff, or abandoned

Besides the interval, a cycle is triggered right away when a new message is
captured or the network comes back.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from device.outbox import Outbox
from device.relay_config import RelaySettings
from device.transport import DeliveryTransport
from models.delivery import DeliveryOutcome, OutcomeKind, CycleReport
from models.queue_item import QueueItem
from utils.backoff import backoff_delay
import logging

logger = logging.getLogger(__name__)

JOB_ID = "outbox_sync"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RetryScheduler:
    """Delivers outbox items with capped exponential backoff"""

    def __init__(
        self,
        outbox: Outbox,
        transport: DeliveryTransport,
        config: RelaySettings = None,
        clock: Callable[[], datetime] = None,
    ):
        self.outbox = outbox
        self.transport = transport
        self.config = config or RelaySettings()
        self.clock = clock or utcnow
        self._scheduler: Optional[BackgroundScheduler] = None

    def run_cycle(self, now: datetime = None) -> CycleReport:
        """
        Run one delivery cycle.

        Never raises: transport exceptions count as retryable failures and
        outbox errors are logged, leaving items for the next cycle.

        Args:
            now: Cycle time (defaults to the scheduler clock)

        Returns:
            CycleReport with due/claimed/delivered/retried/abandoned counts
        """
        now = now or self.clock()
        report = CycleReport()

        try:
            self.outbox.release_expired_claims(
                now - timedelta(seconds=self.config.CLAIM_LEASE_SECONDS)
            )

            due = self.outbox.due_items(
                now, limit=self.config.BATCH_LIMIT, max_attempts=self.config.MAX_ATTEMPTS
            )
            report.due = len(due)

            claimed = [item for item in due if self.outbox.mark_in_flight(item.id, now)]
            report.claimed = len(claimed)

            if claimed:
                workers = max(1, min(self.config.MAX_WORKERS, len(claimed)))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    outcomes = list(pool.map(self._attempt, claimed))

                for item, outcome in zip(claimed, outcomes):
                    try:
                        self._record(item, outcome, now, report)
                    except Exception as e:
                        # Stays in flight until its claim lease expires
                        logger.error(f"Could not record outcome for {item.id}: {e}", exc_info=True)

        except Exception as e:
            logger.error(f"Outbox sync cycle failed: {e}", exc_info=True)

        if report.due:
            logger.info(
                f"Outbox sync: {report.delivered} delivered, {report.retried} retried, "
                f"{report.abandoned} abandoned ({report.claimed}/{report.due} claimed)"
            )
        self._log_stats()
        return report

    def _attempt(self, item: QueueItem) -> DeliveryOutcome:
        try:
            return self.transport.deliver(item)
        except Exception as e:
            logger.error(f"Unexpected delivery error for {item.id}: {e}", exc_info=True)
            return DeliveryOutcome.retryable(f"unexpected error: {e}")

    def _record(self, item: QueueItem, outcome: DeliveryOutcome, now: datetime, report: CycleReport):
        if outcome.kind == OutcomeKind.SUCCESS:
            self.outbox.record_success(item.id)
            report.delivered += 1

        elif outcome.kind == OutcomeKind.TERMINAL:
            self.outbox.abandon(item.id, outcome.reason, outcome.status_code)
            report.abandoned += 1

        elif item.attempt_count + 1 >= self.config.MAX_ATTEMPTS:
            self.outbox.abandon(
                item.id,
                f"max attempts reached: {outcome.reason}",
                outcome.status_code,
            )
            report.abandoned += 1

        else:
            delay = backoff_delay(
                item.attempt_count,
                base_delay=timedelta(seconds=self.config.BASE_DELAY_SECONDS),
                max_exponent=self.config.MAX_BACKOFF_EXPONENT,
            )
            self.outbox.record_failure(
                item.id, outcome.reason, now + delay, status_code=outcome.status_code
            )
            report.retried += 1

    def _log_stats(self):
        try:
            stats = self.outbox.stats()
        except Exception as e:
            logger.error(f"Could not read outbox stats: {e}", exc_info=True)
            return
        if stats.abandoned:
            logger.warning(
                f"Outbox: {stats.pending} pending, {stats.in_flight} in flight, "
                f"{stats.abandoned} abandoned"
            )
        else:
            logger.debug(f"Outbox: {stats.pending} pending, {stats.in_flight} in flight")

    def start(self) -> BackgroundScheduler:
        """
        Start interval delivery.

        Items left in flight by a previous process are released first, then
        a first cycle is scheduled immediately.

        Returns:
            APScheduler BackgroundScheduler instance
        """
        self.outbox.release_stale_claims()

        scheduler = BackgroundScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.config.SYNC_INTERVAL_SECONDS),
            id=JOB_ID,
            name="Outbox Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=utcnow(),
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(f"Outbox sync scheduler started (every {self.config.SYNC_INTERVAL_SECONDS}s)")
        return scheduler

    def trigger_now(self) -> bool:
        """Run a cycle as soon as possible; False when the scheduler is not running"""
        if self._scheduler is None or not self._scheduler.running:
            return False
        self._scheduler.modify_job(JOB_ID, next_run_time=utcnow())
        return True

    def stop(self):
        """Stop scheduling; in-flight deliveries are not awaited"""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Outbox sync scheduler stopped")
