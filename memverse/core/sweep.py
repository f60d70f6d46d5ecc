"""
Sweep Scheduler - periodic delivery pass over all subscribers.

State machine:
    IDLE -> RUNNING -> IDLE   (one tick)
    any  -> STOPPED           (terminal, on stop())

Each tick lists subscribed users, checks due-ness from the stored marker
alone, and delivers to every due subscriber concurrently. Failures are
per-subscriber: logged, counted, and never abort the rest of the tick.
"""

import asyncio
import itertools
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sdk.logging import getLogger, deliveryContext
from .delivery import DeliveryOrchestrator
from .errors import DeliveryError
from .models import Subscriber, utcNow
from .pace import isDue
from .subscriberStore import SubscriberStore


class SweepState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SweepReport:
    """Counters for one tick"""
    tick: int
    startedAt: datetime
    considered: int = 0
    skipped: int = 0
    due: int = 0
    delivered: int = 0
    conflicts: int = 0
    failed: int = 0

    def toDict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['startedAt'] = self.startedAt.isoformat()
        return data


class SweepScheduler:
    """
    Timer-driven sweep loop.

    Interval, concurrency and clock are constructor arguments so several
    schedulers with different cadences can coexist, and tests can call
    tick() directly without waiting on real time.
    """

    def __init__(self, subscriberStore: SubscriberStore, orchestrator: DeliveryOrchestrator,
                 intervalSeconds: float, maxConcurrency: int = 16,
                 clock: Callable[[], datetime] = utcNow, runOnStart: bool = False,
                 ioTimeoutSeconds: float = 30.0):
        if intervalSeconds <= 0:
            raise ValueError("intervalSeconds must be positive")
        if maxConcurrency < 1:
            raise ValueError("maxConcurrency must be >= 1")

        self.subscriberStore = subscriberStore
        self.orchestrator = orchestrator
        self.intervalSeconds = intervalSeconds
        self.maxConcurrency = maxConcurrency
        self.clock = clock
        self.runOnStart = runOnStart
        self.ioTimeoutSeconds = ioTimeoutSeconds
        self.log = getLogger()

        self._state = SweepState.IDLE
        self._stopEvent = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._tickCounter = itertools.count(1)
        self.lastReport: Optional[SweepReport] = None

    @property
    def state(self) -> SweepState:
        return self._state

    def start(self) -> asyncio.Task:
        """Spawn the sweep loop on the running event loop"""
        if self._state == SweepState.STOPPED:
            raise RuntimeError("SweepScheduler is stopped and cannot be restarted")
        if self._task is not None and not self._task.done():
            return self._task

        self._task = asyncio.create_task(self._loop(), name="verse-sweep")
        self.log.info(f"[SweepScheduler] Started ({self.intervalSeconds}s interval, "
                      f"maxConcurrency={self.maxConcurrency})")
        return self._task

    async def stop(self):
        """
        Stop the loop.

        Returns once the loop has exited; a tick already in progress is
        allowed to finish its in-flight deliveries first.
        """
        self._stopEvent.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._state = SweepState.STOPPED
        self.log.info("[SweepScheduler] Stopped")

    async def _loop(self):
        if self.runOnStart:
            await self._safeTick()

        while not self._stopEvent.is_set():
            try:
                await asyncio.wait_for(self._stopEvent.wait(), timeout=self.intervalSeconds)
                break
            except asyncio.TimeoutError:
                pass
            await self._safeTick()

    async def _safeTick(self):
        if self._stopEvent.is_set():
            return
        try:
            await self.tick()
        except Exception as e:
            self.log.error(f"[SweepScheduler] Tick failed: {e}", exc_info=True)

    async def tick(self) -> SweepReport:
        """Run one sweep over all subscribed users"""
        if self._state == SweepState.STOPPED:
            raise RuntimeError("SweepScheduler is stopped")

        report = SweepReport(tick=next(self._tickCounter), startedAt=self.clock())
        self._state = SweepState.RUNNING
        try:
            subscribers = await asyncio.wait_for(
                asyncio.to_thread(self.subscriberStore.listSubscribed),
                timeout=self.ioTimeoutSeconds
            )
            report.considered = len(subscribers)

            now = self.clock()
            dueSubscribers: List[Subscriber] = []
            for subscriber in subscribers:
                if not subscriber.isSubscribed:
                    report.skipped += 1
                    continue
                try:
                    due = isDue(subscriber.pace, subscriber.lastVerseSentAt, now)
                except DeliveryError as e:
                    report.failed += 1
                    self.log.warning(f"[SweepScheduler] Skipping user {subscriber.userId}: {e}")
                    continue
                if due:
                    dueSubscribers.append(subscriber)
                else:
                    report.skipped += 1

            report.due = len(dueSubscribers)

            semaphore = asyncio.Semaphore(self.maxConcurrency)
            results = await asyncio.gather(
                *(self._deliverOne(subscriber, report.tick, semaphore) for subscriber in dueSubscribers),
                return_exceptions=True
            )

            for subscriber, result in zip(dueSubscribers, results):
                if isinstance(result, BaseException):
                    report.failed += 1
                    continue
                if result.delivered:
                    report.delivered += 1
                elif result.conflict:
                    report.conflicts += 1

            self.lastReport = report
            self.log.info(f"[SweepScheduler] Tick {report.tick} complete: "
                          f"{report.delivered}/{report.due} delivered, {report.failed} failed, "
                          f"{report.conflicts} conflicts, {report.skipped} skipped")
            return report
        finally:
            if self._state == SweepState.RUNNING:
                self._state = SweepState.IDLE

    async def _deliverOne(self, subscriber: Subscriber, tick: int, semaphore: asyncio.Semaphore):
        async with semaphore:
            with deliveryContext(userId=subscriber.userId, sweepTick=tick):
                try:
                    return await self.orchestrator.deliverTo(subscriber)
                except DeliveryError as e:
                    self.log.warning(f"[SweepScheduler] Delivery to user {subscriber.userId} failed: {e}")
                    raise
                except Exception as e:
                    self.log.error(f"[SweepScheduler] Unexpected error for user {subscriber.userId}: {e}",
                                   exc_info=True)
                    raise
