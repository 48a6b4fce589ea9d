"""
Device Relay

Wires the on-device half of the pipeline together:
    event source -> content filter -> outbox -> sync scheduler -> transport

The capture path (handle_event) only filters and writes to SQLite; all
network I/O happens on the scheduler's threads.

Usage:
    RELAY_DEVICE_ID=... RELAY_DEVICE_SECRET=... RELAY_ENDPOINT_URL=https://... \\
        python -m device.relay < events.jsonl
"""

from typing import Dict, Any
import logging
import sys

from device.event_source import EventSource, JsonLinesEventSource
from device.outbox import Outbox
from device.relay_config import RelaySettings
from device.secure_store import SecureStore, InMemorySecureStore
from device.transport import DeliveryTransport
from models.captured_event import CapturedEvent
from models.queue_item import EnqueueResult
from processors.content_filter import ContentFilter, content_filter
from schedulers.outbox_sync import RetryScheduler

logger = logging.getLogger(__name__)


class DeviceRelay:
    """Owns the relay components and their lifecycle"""

    def __init__(
        self,
        secure_store: SecureStore,
        config: RelaySettings = None,
        outbox: Outbox = None,
        transport: DeliveryTransport = None,
        scheduler: RetryScheduler = None,
        message_filter: ContentFilter = None,
    ):
        self.config = config or RelaySettings()
        self.secure_store = secure_store
        self.filter = message_filter or content_filter
        self.outbox = outbox or Outbox(self.config.OUTBOX_PATH)
        self.transport = transport or DeliveryTransport(secure_store, self.config)
        self.scheduler = scheduler or RetryScheduler(self.outbox, self.transport, self.config)

    def attach(self, source: EventSource):
        source.subscribe(self.handle_event)

    def handle_event(self, event: CapturedEvent) -> EnqueueResult:
        """
        Capture path: filter, then enqueue.

        Returns:
            EnqueueResult, or None when the filter dropped the event
        """
        reason = self.filter.rejection_reason(event.sender, event.body)
        if reason:
            logger.debug(f"Dropped message from {event.sender!r} ({reason})")
            return None

        result = self.outbox.enqueue(event)
        if result == EnqueueResult.ACCEPTED:
            self.scheduler.trigger_now()
        return result

    def on_reconnect(self):
        """Network is back: flush the outbox without waiting for the interval"""
        logger.info("Network available, triggering outbox sync")
        self.scheduler.trigger_now()

    def start(self):
        missing = self.secure_store.missing_keys()
        if missing:
            logger.warning(f"Relay credentials incomplete ({', '.join(missing)}); deliveries will be abandoned")
        self.scheduler.start()

    def stop(self):
        self.scheduler.stop()
        self.outbox.close()

    def health(self) -> Dict[str, Any]:
        """Counts only, never message content"""
        stats = self.outbox.stats()
        return {
            "pending": stats.pending,
            "in_flight": stats.in_flight,
            "abandoned": stats.abandoned,
            "configured": not self.secure_store.missing_keys(),
        }


def main():
    config = RelaySettings()
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    relay = DeviceRelay(InMemorySecureStore.from_env(), config)
    source = JsonLinesEventSource(sys.stdin)
    relay.attach(source)
    relay.start()

    try:
        count = source.run()
        logger.info(f"Read {count} events from stdin, draining outbox")
        relay.scheduler.run_cycle()
        logger.info(f"Relay health: {relay.health()}")
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        relay.stop()


if __name__ == "__main__":
    main()
