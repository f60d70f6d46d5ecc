"""
On-demand dashboard resolution.

Validates the profile, delegates eligibility and delivery to the
DeliveryOrchestrator, then loads notes and delivery history as read-only
side data.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sdk.logging import getLogger, deliveryContext
from .delivery import DeliveryOrchestrator
from .errors import NotEligibleError, ProfileIncompleteError
from .models import DeliveryRecord, Subscriber, UserNote, Verse
from .pace import parsePace
from .verseStore import VerseStore


@dataclass
class DashboardView:
    subscriber: Subscriber
    verse: Verse
    notes: List[UserNote] = field(default_factory=list)
    history: List[DeliveryRecord] = field(default_factory=list)
    delivered: bool = False

    def toDict(self) -> Dict[str, Any]:
        return {
            'user': self.subscriber.toDict(),
            'verse': self.verse.toDict(),
            'notes': [note.toDict() for note in self.notes],
            'verseHistory': [record.toDict() for record in self.history]
        }


class DashboardResolver:
    """Synchronous-read entry point used by the dashboard endpoint"""

    def __init__(self, orchestrator: DeliveryOrchestrator, verseStore: VerseStore):
        self.orchestrator = orchestrator
        self.verseStore = verseStore
        self.log = getLogger()

    async def resolve(self, userId: int) -> DashboardView:
        """
        Current verse plus notes and history for a user.

        Raises:
            NotEligibleError: unknown user
            ProfileIncompleteError: profile setup not finished (checked first)
            InvalidPaceError: stored pace is not daily/weekly
            NoContentForTranslationError, NoArtifactAvailableError, StorageError
        """
        with deliveryContext(userId=userId):
            subscriber = await self.orchestrator.callStore(
                self.orchestrator.subscriberStore.getSubscriber, userId
            )
            if subscriber is None:
                raise NotEligibleError(userId, "user not found")
            if not subscriber.isProfileCompleted:
                raise ProfileIncompleteError(userId)

            parsePace(subscriber.pace)

            outcome = await self.orchestrator.deliverTo(subscriber)

            notes, history = await asyncio.gather(
                self.orchestrator.callStore(self.verseStore.notes, userId),
                self.orchestrator.callStore(self.verseStore.history, userId)
            )

            return DashboardView(
                subscriber=outcome.subscriber,
                verse=outcome.verse,
                notes=notes,
                history=history,
                delivered=outcome.delivered
            )
