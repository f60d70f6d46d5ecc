"""
Subscriber Store - delivery-side access to the users table.

Owns the conditional commit that advances a subscriber's lastVerseSentAt
marker together with the verseHistory append. No other code path writes
either of those.
"""

from datetime import datetime
from typing import List, Optional

from sdk.logging import getLogger
from .database import Database
from .models import Subscriber, toIso, utcNow


class SubscriberStore:
    """Subscriber reads plus the compare-and-swap delivery commit"""

    def __init__(self, database: Database):
        self.database = database
        self.log = getLogger()

    def listSubscribed(self) -> List[Subscriber]:
        """All subscribed users with a completed profile"""
        rows = self.database.query("""
            SELECT * FROM users
            WHERE isSubscribed = 1 AND isProfileCompleted = 1
            ORDER BY userId
        """)
        return [Subscriber.fromRow(row) for row in rows]

    def getSubscriber(self, userId: int) -> Optional[Subscriber]:
        row = self.database.queryOne("SELECT * FROM users WHERE userId = ?", (userId,))
        return Subscriber.fromRow(row) if row else None

    def commitDelivery(self, userId: int, verseId: int,
                       expectedMarker: Optional[datetime], newMarker: datetime) -> bool:
        """
        Record a delivery and advance lastVerseSentAt as one unit.

        The marker update only applies while the stored marker still equals
        expectedMarker (IS also matches NULL). Returns False when another
        caller moved the marker first; in that case nothing is written.
        """
        newIso = toIso(newMarker)

        with self.database.transaction() as cursor:
            cursor.execute("""
                UPDATE users
                SET lastVerseSentAt = ?, updatedAt = ?
                WHERE userId = ? AND lastVerseSentAt IS ?
            """, (newIso, toIso(utcNow()), userId, toIso(expectedMarker)))

            if cursor.rowcount == 0:
                return False

            cursor.execute("""
                INSERT INTO verseHistory (userId, verseId, deliveredAt)
                VALUES (?, ?, ?)
            """, (userId, verseId, newIso))

        self.log.debug(f"[SubscriberStore] Committed verse {verseId} for user {userId} at {newIso}")
        return True

    def toggleSubscription(self, userId: int) -> Optional[bool]:
        """Flip isSubscribed; returns the new state or None for unknown users"""
        with self.database.transaction() as cursor:
            cursor.execute("""
                UPDATE users
                SET isSubscribed = CASE isSubscribed WHEN 1 THEN 0 ELSE 1 END,
                    updatedAt = ?
                WHERE userId = ?
            """, (toIso(utcNow()), userId))
            if cursor.rowcount == 0:
                return None
            cursor.execute("SELECT isSubscribed FROM users WHERE userId = ?", (userId,))
            subscribed = bool(cursor.fetchone()['isSubscribed'])

        self.log.info(f"[SubscriberStore] User {userId} subscribed={subscribed}")
        return subscribed
