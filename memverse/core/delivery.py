"""
Delivery orchestration for MemVerse Core.

Architecture contract:
- Read-evaluate-commit: subscriber state is read once, the pace policy is
  evaluated against that snapshot, and the commit is conditioned on the
  snapshot's lastVerseSentAt still being current
- At-most-once per due interval: a lost conditional commit writes nothing
  and returns the winner's delivery instead
- Notify-after-commit: notifications are queued only after a successful
  commit and never roll it back

Both the sweep scheduler and the dashboard resolver deliver through here.

Property of Uncompromising Sensors LLC.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sdk.logging import getLogger
from .database import DatabaseError
from .errors import (
    DeliveryConflictError, DeliveryTimeoutError, NoArtifactAvailableError,
    NoContentForTranslationError, NotEligibleError, StorageError
)
from .models import DeliveryRecord, Subscriber, Verse, utcNow
from .notifications import NotificationDispatcher
from .pace import isDue
from .subscriberStore import SubscriberStore
from .verseStore import VerseStore


@dataclass(frozen=True)
class DeliveryOutcome:
    """
    Result of a deliver() call.

    delivered: this call committed a new DeliveryRecord
    conflict: another caller committed first; record is theirs
    """
    subscriber: Subscriber
    verse: Verse
    record: DeliveryRecord
    delivered: bool
    conflict: bool = False


class DeliveryOrchestrator:
    """
    Single choke point for delivering verses.

    Store calls are blocking SQLite calls; each runs in a worker thread with
    a bounded timeout so a stalled store only fails the subscriber at hand.
    """

    def __init__(self, subscriberStore: SubscriberStore, verseStore: VerseStore,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 clock: Callable[[], datetime] = utcNow,
                 ioTimeoutSeconds: float = 10.0,
                 commitTimeoutSeconds: Optional[float] = None):
        self.subscriberStore = subscriberStore
        self.verseStore = verseStore
        self.dispatcher = dispatcher
        self.clock = clock
        self.ioTimeoutSeconds = ioTimeoutSeconds
        # A timed-out commit keeps running in its worker thread and may still land,
        # so the write gets more room than the reads
        self.commitTimeoutSeconds = commitTimeoutSeconds or ioTimeoutSeconds * 3
        self.log = getLogger()

    async def deliver(self, userId: int) -> DeliveryOutcome:
        """
        Deliver a verse to a user if due, otherwise return the current one.

        Steps:
        1. Load subscriber state (NotEligibleError if missing/incomplete)
        2. Pace check against the injected clock
        3. Not due: return newest DeliveryRecord (NoArtifactAvailableError if none)
        4. Due: pick verse for translation (NoContentForTranslationError if none)
        5. Conditional commit of record + marker
        6. Queue notification (best effort)
        """
        subscriber = await self.callStore(self.subscriberStore.getSubscriber, userId)
        if subscriber is None:
            raise NotEligibleError(userId, "user not found")
        if not subscriber.isProfileCompleted:
            raise NotEligibleError(userId, "profile incomplete")

        return await self.deliverTo(subscriber)

    async def deliverTo(self, subscriber: Subscriber) -> DeliveryOutcome:
        """Deliver using an already-loaded subscriber snapshot"""
        userId = subscriber.userId
        now = self.clock()

        # Raises InvalidPaceError for unrecognized paces
        if not isDue(subscriber.pace, subscriber.lastVerseSentAt, now):
            return await self._currentDelivery(subscriber)

        verse = await self.callStore(self.verseStore.pickVerse, userId, subscriber.bibleTranslation)
        if verse is None:
            raise NoContentForTranslationError(subscriber.bibleTranslation)

        committed = await self.callStore(
            self.subscriberStore.commitDelivery,
            userId, verse.verseId, subscriber.lastVerseSentAt, now,
            timeout=self.commitTimeoutSeconds
        )

        if not committed:
            conflict = DeliveryConflictError(userId)
            self.log.info(f"[DeliveryOrchestrator] {conflict}; returning current delivery")
            outcome = await self._currentDelivery(subscriber)
            return DeliveryOutcome(
                subscriber=outcome.subscriber,
                verse=outcome.verse,
                record=outcome.record,
                delivered=False,
                conflict=True
            )

        record = DeliveryRecord(userId=userId, verseId=verse.verseId, deliveredAt=now, verse=verse)
        subscriber.lastVerseSentAt = now
        self.log.info(f"[DeliveryOrchestrator] Delivered {verse.reference} ({verse.translation}) "
                      f"to user {userId}", verseId=verse.verseId)

        await self._notify(subscriber, verse)

        return DeliveryOutcome(
            subscriber=subscriber,
            verse=verse,
            record=record,
            delivered=True
        )

    async def _currentDelivery(self, subscriber: Subscriber) -> DeliveryOutcome:
        """Newest DeliveryRecord for the subscriber as a non-delivering outcome"""
        record = await self.callStore(self.verseStore.lastDelivered, subscriber.userId)
        if record is None:
            raise NoArtifactAvailableError(subscriber.userId)

        # The record is authoritative for the marker
        subscriber.lastVerseSentAt = record.deliveredAt
        return DeliveryOutcome(
            subscriber=subscriber,
            verse=record.verse,
            record=record,
            delivered=False
        )

    async def _notify(self, subscriber: Subscriber, verse: Verse):
        """
        Queue the verse email for a subscriber who still wants it.

        The subscription flag is re-read after the commit: the snapshot may
        predate an unsubscribe (sweep list) and the dashboard delivers to
        unsubscribed users without mailing them.
        """
        if self.dispatcher is None:
            return
        if not subscriber.enableNotification:
            self.log.debug(f"[DeliveryOrchestrator] Notifications disabled for user {subscriber.userId}")
            return
        if not subscriber.isSubscribed:
            self.log.debug(f"[DeliveryOrchestrator] User {subscriber.userId} unsubscribed, no email")
            return

        try:
            current = await self.callStore(self.subscriberStore.getSubscriber, subscriber.userId)
        except StorageError as e:
            # The delivery is committed; only the email is lost
            self.log.warning(f"[DeliveryOrchestrator] Skipping email for user {subscriber.userId}: {e}")
            return
        if current is None or not current.isSubscribed:
            self.log.info(f"[DeliveryOrchestrator] User {subscriber.userId} unsubscribed during delivery, no email")
            return

        self.dispatcher.submit(subscriber, verse)

    async def callStore(self, func: Callable[..., Any], *args, timeout: Optional[float] = None) -> Any:
        """
        Run a blocking store call off-loop with a timeout, wrapping storage failures.

        wait_for cannot cancel the worker thread. A call that times out keeps
        running and a write may still commit after DeliveryTimeoutError is
        raised; the next pace check then sees the advanced marker.
        """
        timeout = timeout or self.ioTimeoutSeconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            self.log.error(f"[DeliveryOrchestrator] {func.__name__} timed out "
                           f"after {timeout}s")
            raise DeliveryTimeoutError(f"{func.__name__} timed out") from None
        except (sqlite3.Error, DatabaseError) as e:
            self.log.error(f"[DeliveryOrchestrator] Storage error in {func.__name__}: {e}")
            raise StorageError(f"storage failure in {func.__name__}") from e
