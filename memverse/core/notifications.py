"""
Notification dispatch for committed deliveries.

Delivery commits hand notifications to a bounded asyncio.Queue drained by a
fixed pool of worker tasks. Each notification gets exactly one send attempt;
failures and queue-full drops are logged and counted, never raised back
into the delivery path.

Property of Uncompromising Sensors LLC.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from sdk.logging import getLogger, deliveryContext
from .errors import NotificationFailedError
from .models import Subscriber, Verse


class Notifier(Protocol):
    """Anything that can tell a subscriber about a verse"""

    async def notify(self, subscriber: Subscriber, verse: Verse) -> None:
        ...


class LogNotifier:
    """Notifier used when outbound mail is disabled"""

    def __init__(self):
        self.log = getLogger()

    async def notify(self, subscriber: Subscriber, verse: Verse) -> None:
        self.log.info(f"[LogNotifier] Verse {verse.reference} for {subscriber.email}")


@dataclass
class _Notification:
    subscriber: Subscriber
    verse: Verse


class NotificationDispatcher:
    """
    Bounded, supervised notification queue.

    submit() never blocks: when the queue is full the notification is
    dropped and counted so backpressure shows up in stats() and the logs.
    """

    def __init__(self, notifier: Notifier, maxQueueSize: int = 1000,
                 workers: int = 4, sendTimeoutSeconds: float = 30.0):
        if maxQueueSize < 1 or workers < 1:
            raise ValueError("maxQueueSize and workers must be >= 1")
        self.notifier = notifier
        self.maxQueueSize = maxQueueSize
        self.workerCount = workers
        self.sendTimeoutSeconds = sendTimeoutSeconds
        self.log = getLogger()

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._running = False

        self._submitted = 0
        self._sent = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start worker tasks (requires a running event loop)"""
        if self._running:
            return

        self._queue = asyncio.Queue(maxsize=self.maxQueueSize)
        self._running = True
        self._workers = [
            asyncio.create_task(self._workerLoop(i), name=f"notify-worker-{i}")
            for i in range(self.workerCount)
        ]
        self.log.info(f"[NotificationDispatcher] Started {self.workerCount} workers, "
                      f"queue size {self.maxQueueSize}")

    async def stop(self, drainTimeoutSeconds: float = 10.0):
        """Stop accepting work, drain what is queued, then stop workers"""
        if not self._running:
            return

        self._running = False
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drainTimeoutSeconds)
        except asyncio.TimeoutError:
            self.log.warning(f"[NotificationDispatcher] Drain timed out, "
                             f"{self._queue.qsize()} notifications abandoned")

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        self.log.info("[NotificationDispatcher] Stopped", **self.stats())

    def submit(self, subscriber: Subscriber, verse: Verse) -> bool:
        """Queue a notification; returns False if it was dropped"""
        if not self._running:
            self._dropped += 1
            self.log.warning(f"[NotificationDispatcher] Not running, dropped notification "
                             f"for user {subscriber.userId}")
            return False

        try:
            self._queue.put_nowait(_Notification(subscriber, verse))
        except asyncio.QueueFull:
            self._dropped += 1
            self.log.warning(f"[NotificationDispatcher] Queue full, dropped notification "
                             f"for user {subscriber.userId}")
            return False

        self._submitted += 1
        return True

    async def join(self):
        """Wait until every queued notification has been attempted"""
        if self._queue is not None:
            await self._queue.join()

    def stats(self) -> Dict[str, int]:
        return {
            'submitted': self._submitted,
            'sent': self._sent,
            'failed': self._failed,
            'dropped': self._dropped,
            'pending': self._queue.qsize() if self._queue else 0
        }

    async def _workerLoop(self, index: int):
        while True:
            item = await self._queue.get()
            try:
                with deliveryContext(userId=item.subscriber.userId):
                    await self._send(item)
            finally:
                self._queue.task_done()

    async def _send(self, item: _Notification):
        """Single attempt; any failure is logged as NotificationFailedError"""
        try:
            await asyncio.wait_for(
                self.notifier.notify(item.subscriber, item.verse),
                timeout=self.sendTimeoutSeconds
            )
            self._sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            failure = NotificationFailedError(
                f"notify user {item.subscriber.userId} ({item.verse.reference}) failed: {e!r}"
            )
            self.log.error(f"[NotificationDispatcher] {failure}")
