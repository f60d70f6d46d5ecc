"""
MemVerse data model.

Subscriber, Verse, DeliveryRecord and the read-only side data shown on the
dashboard. Timestamps are timezone-aware UTC datetimes in memory and
fixed-width ISO-8601 strings in storage, so a stored marker compares equal
to the string it was written from.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import orjson


class Pace(str, Enum):
    """Delivery cadence selected by the user"""
    DAILY = "daily"
    WEEKLY = "weekly"


def utcNow() -> datetime:
    """Default clock"""
    return datetime.now(timezone.utc)


def toIso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to the storage form (UTC, microsecond precision)"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def fromIso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Verse:
    """Immutable memory verse"""
    verseId: int
    reference: str
    text: str
    translation: str
    createdAt: Optional[datetime] = None
    isFavourite: bool = False

    @classmethod
    def fromRow(cls, row: sqlite3.Row, prefix: str = '') -> 'Verse':
        keys = row.keys()
        favouriteKey = f'{prefix}isFavourite'
        return cls(
            verseId=row[f'{prefix}verseId'],
            reference=row[f'{prefix}reference'],
            text=row[f'{prefix}text'],
            translation=row[f'{prefix}translation'],
            createdAt=fromIso(row[f'{prefix}createdAt']),
            isFavourite=bool(row[favouriteKey]) if favouriteKey in keys else False
        )

    def toDict(self) -> Dict[str, Any]:
        return {
            'id': self.verseId,
            'reference': self.reference,
            'verse': self.text,
            'translation': self.translation,
            'createdAt': toIso(self.createdAt),
            'isFavourite': self.isFavourite
        }


@dataclass(frozen=True)
class DeliveryRecord:
    """Append-only fact: verse delivered to user at deliveredAt"""
    userId: int
    verseId: int
    deliveredAt: datetime
    verse: Verse

    def toDict(self) -> Dict[str, Any]:
        return {
            'userId': self.userId,
            'verseId': self.verseId,
            'deliveredAt': toIso(self.deliveredAt),
            'verse': self.verse.toDict()
        }


@dataclass
class Subscriber:
    """
    Delivery-relevant view of a user.

    pace holds the stored value as-is; validation happens in the pace policy
    so unrecognized values are rejected rather than defaulted.
    """
    userId: int
    email: str
    userName: Optional[str] = None
    pace: Optional[str] = None
    bibleTranslation: Optional[str] = None
    isSubscribed: bool = True
    isProfileCompleted: bool = False
    lastVerseSentAt: Optional[datetime] = None
    enableNotification: bool = True
    isEmailNotification: bool = True
    isWebNotification: bool = False
    inspirations: List[str] = field(default_factory=list)
    selectedTime: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def fromRow(cls, row: sqlite3.Row) -> 'Subscriber':
        inspirations = row['inspirations']
        return cls(
            userId=row['userId'],
            email=row['email'],
            userName=row['userName'],
            pace=row['versePace'],
            bibleTranslation=row['bibleTranslation'],
            isSubscribed=bool(row['isSubscribed']),
            isProfileCompleted=bool(row['isProfileCompleted']),
            lastVerseSentAt=fromIso(row['lastVerseSentAt']),
            enableNotification=bool(row['enableNotification']),
            isEmailNotification=bool(row['isEmailNotification']),
            isWebNotification=bool(row['isWebNotification']),
            inspirations=orjson.loads(inspirations) if inspirations else [],
            selectedTime=row['selectedTime'],
            createdAt=fromIso(row['createdAt']),
            updatedAt=fromIso(row['updatedAt'])
        )

    def toDict(self) -> Dict[str, Any]:
        return {
            'id': self.userId,
            'email': self.email,
            'userName': self.userName,
            'versePace': self.pace,
            'bibleTranslation': self.bibleTranslation,
            'isSubscribed': self.isSubscribed,
            'isProfileCompleted': self.isProfileCompleted,
            'lastVerseSentAt': toIso(self.lastVerseSentAt),
            'enableNotification': self.enableNotification,
            'isEmailNotification': self.isEmailNotification,
            'isWebNotification': self.isWebNotification,
            'inspirations': self.inspirations,
            'selectedTime': self.selectedTime,
            'createdAt': toIso(self.createdAt),
            'updatedAt': toIso(self.updatedAt)
        }


@dataclass(frozen=True)
class UserNote:
    noteId: int
    verseReference: str
    content: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def toDict(self) -> Dict[str, Any]:
        return {
            'id': self.noteId,
            'verseReference': self.verseReference,
            'content': self.content,
            'createdAt': toIso(self.createdAt),
            'updatedAt': toIso(self.updatedAt)
        }


@dataclass(frozen=True)
class FavouriteVerse:
    favouriteId: int
    userId: int
    verseId: int
    verse: Verse
    createdAt: Optional[datetime] = None

    def toDict(self) -> Dict[str, Any]:
        return {
            'id': self.favouriteId,
            'userId': self.userId,
            'verseId': self.verseId,
            'verse': self.verse.toDict(),
            'createdAt': toIso(self.createdAt)
        }
