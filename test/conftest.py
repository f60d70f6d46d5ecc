"""
Shared fixtures for MemVerse tests.

Every test gets its own SQLite file in a temporary directory. Time is driven
by FakeClock so pace boundaries are exact and nothing sleeps.

Property of Uncompromising Sensors LLC.
"""

import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from memverse.core.database import Database
from memverse.core.models import Subscriber, Verse, toIso
from memverse.core.subscriberStore import SubscriberStore
from memverse.core.verseStore import VerseStore


START = datetime(2025, 1, 6, 8, 0, 0, tzinfo=timezone.utc)

SEED_VERSES = [
    {'reference': 'John 3:16', 'translation': 'KJV',
     'verse': 'For God so loved the world, that he gave his only begotten Son.'},
    {'reference': 'Psalm 23:1', 'translation': 'KJV',
     'verse': 'The LORD is my shepherd; I shall not want.'},
    {'reference': 'Proverbs 3:5', 'translation': 'KJV',
     'verse': 'Trust in the LORD with all thine heart.'},
    {'reference': 'John 3:16', 'translation': 'WEB',
     'verse': 'For God so loved the world, that he gave his one and only Son.'},
]


class FakeClock:
    """Injectable clock; call it for the current time, advance() to move it"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Notifier that remembers what it was asked to send"""

    def __init__(self, failFor: Optional[set] = None):
        self.sent: List[tuple] = []
        self.failFor = failFor or set()

    async def notify(self, subscriber: Subscriber, verse: Verse) -> None:
        if subscriber.userId in self.failFor:
            raise ConnectionError(f"smtp refused {subscriber.email}")
        self.sent.append((subscriber.userId, verse.verseId))


def addUser(database: Database, email: str, pace: Optional[str] = 'daily',
            translation: str = 'KJV', lastVerseSentAt: Optional[datetime] = None,
            isSubscribed: bool = True, isProfileCompleted: bool = True,
            enableNotification: bool = True) -> int:
    """Insert a user row directly (skips bcrypt for speed)"""
    now = toIso(START)
    return database.insert("""
        INSERT INTO users (email, passwordHash, userName, isProfileCompleted, versePace,
                           bibleTranslation, enableNotification, inspirations, selectedTime,
                           isSubscribed, lastVerseSentAt, createdAt, updatedAt)
        VALUES (?, 'x', ?, ?, ?, ?, ?, '["hope"]', '08:00', ?, ?, ?, ?)
    """, (email, email.split('@')[0], int(isProfileCompleted), pace, translation,
          int(enableNotification), int(isSubscribed), toIso(lastVerseSentAt), now, now))


@pytest.fixture
def tempDir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def database(tempDir):
    db = Database(str(tempDir / 'memverse.db'))
    yield db
    db.close()


@pytest.fixture
def subscriberStore(database):
    return SubscriberStore(database)


@pytest.fixture
def verseStore(database):
    store = VerseStore(database)
    store.addVerses(SEED_VERSES)
    return store


@pytest.fixture
def clock():
    return FakeClock()
