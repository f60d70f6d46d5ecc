"""
Verse Store - verse catalogue, delivery history and dashboard side data.

Selection and history reads only; delivery commits go through
SubscriberStore.commitDelivery so the history append stays paired with the
marker update.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import orjson

from sdk.logging import getLogger
from .database import Database
from .models import DeliveryRecord, FavouriteVerse, UserNote, Verse, fromIso, toIso, utcNow


# Joined verse columns, aliased so Verse.fromRow can read them with a prefix
_VERSE_COLUMNS = """
    v.verseId AS v_verseId, v.reference AS v_reference, v.text AS v_text,
    v.translation AS v_translation, v.createdAt AS v_createdAt
"""


class VerseStore:
    """Verse catalogue and per-user history, notes and favourites"""

    def __init__(self, database: Database):
        self.database = database
        self.log = getLogger()

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def addVerses(self, verses: Iterable[Dict[str, Any]]) -> int:
        """
        Insert verses, ignoring (reference, translation) pairs already present.

        Each item needs 'reference', 'verse' (or 'text') and 'translation'.
        Returns the number of verses inserted.
        """
        now = toIso(utcNow())
        inserted = 0
        with self.database.transaction() as cursor:
            for item in verses:
                text = item.get('verse', item.get('text'))
                if not item.get('reference') or not text or not item.get('translation'):
                    raise ValueError(f"Verse requires reference, verse and translation: {item}")
                cursor.execute("""
                    INSERT OR IGNORE INTO verses (reference, text, translation, createdAt)
                    VALUES (?, ?, ?, ?)
                """, (item['reference'], text, item['translation'].upper(), now))
                inserted += cursor.rowcount
        return inserted

    def seedFromFile(self, path: str) -> int:
        """Load verses from a JSON file: {"verses": [...]} or a bare list"""
        seedPath = Path(path)
        if not seedPath.exists():
            self.log.warning(f"[VerseStore] Seed file not found: {seedPath}")
            return 0

        data = orjson.loads(seedPath.read_bytes())
        items = data.get('verses', []) if isinstance(data, dict) else data
        inserted = self.addVerses(items)
        self.log.info(f"[VerseStore] Seeded {inserted} new verses from {seedPath}")
        return inserted

    def pickVerse(self, userId: int, translation: str) -> Optional[Verse]:
        """
        Random verse in a translation, preferring ones the user has not seen.

        Falls back to any verse in the translation once all were delivered.
        None when the translation has no verses at all.
        """
        translation = (translation or '').upper()
        row = self.database.queryOne(f"""
            SELECT {_VERSE_COLUMNS},
                EXISTS (
                    SELECT 1 FROM favouriteVerses f
                    WHERE f.userId = ? AND f.verseId = v.verseId
                ) AS v_isFavourite
            FROM verses v
            WHERE v.translation = ?
            ORDER BY
                EXISTS (
                    SELECT 1 FROM verseHistory h
                    WHERE h.userId = ? AND h.verseId = v.verseId
                ),
                RANDOM()
            LIMIT 1
        """, (userId, translation, userId))
        return Verse.fromRow(row, prefix='v_') if row else None

    def randomVerse(self, translation: Optional[str] = None) -> Optional[Verse]:
        """Any random verse, optionally restricted to one translation"""
        if translation:
            row = self.database.queryOne(f"""
                SELECT {_VERSE_COLUMNS} FROM verses v
                WHERE v.translation = ? ORDER BY RANDOM() LIMIT 1
            """, (translation.upper(),))
        else:
            row = self.database.queryOne(f"""
                SELECT {_VERSE_COLUMNS} FROM verses v ORDER BY RANDOM() LIMIT 1
            """)
        return Verse.fromRow(row, prefix='v_') if row else None

    # ------------------------------------------------------------------
    # Delivery history
    # ------------------------------------------------------------------

    def lastDelivered(self, userId: int) -> Optional[DeliveryRecord]:
        """Newest delivery for a user (authoritative last-delivered state)"""
        records = self._queryHistory(userId, limit=1)
        return records[0] if records else None

    def history(self, userId: int) -> List[DeliveryRecord]:
        """Full delivery history, newest first"""
        return self._queryHistory(userId)

    def countDeliveries(self, userId: int) -> int:
        row = self.database.queryOne(
            "SELECT COUNT(*) AS total FROM verseHistory WHERE userId = ?", (userId,)
        )
        return row['total']

    def _queryHistory(self, userId: int, limit: Optional[int] = None) -> List[DeliveryRecord]:
        sql = f"""
            SELECT h.userId, h.verseId, h.deliveredAt, {_VERSE_COLUMNS},
                EXISTS (
                    SELECT 1 FROM favouriteVerses f
                    WHERE f.userId = h.userId AND f.verseId = h.verseId
                ) AS v_isFavourite
            FROM verseHistory h
            JOIN verses v ON v.verseId = h.verseId
            WHERE h.userId = ?
            ORDER BY h.deliveredAt DESC, h.historyId DESC
        """
        params: List[Any] = [userId]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        return [
            DeliveryRecord(
                userId=row['userId'],
                verseId=row['verseId'],
                deliveredAt=fromIso(row['deliveredAt']),
                verse=Verse.fromRow(row, prefix='v_')
            )
            for row in self.database.query(sql, params)
        ]

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def saveNote(self, userId: int, verseReference: str, content: str) -> int:
        now = toIso(utcNow())
        noteId = self.database.insert("""
            INSERT INTO userNotes (userId, verseReference, content, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?)
        """, (userId, verseReference, content, now, now))
        self.log.info(f"[VerseStore] Saved note {noteId} for user {userId}")
        return noteId

    def notes(self, userId: int) -> List[UserNote]:
        """User notes, newest first"""
        rows = self.database.query("""
            SELECT noteId, verseReference, content, createdAt, updatedAt
            FROM userNotes WHERE userId = ?
            ORDER BY createdAt DESC, noteId DESC
        """, (userId,))
        return [
            UserNote(
                noteId=row['noteId'],
                verseReference=row['verseReference'],
                content=row['content'],
                createdAt=fromIso(row['createdAt']),
                updatedAt=fromIso(row['updatedAt'])
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Favourites
    # ------------------------------------------------------------------

    def toggleFavourite(self, userId: int, verseId: int) -> bool:
        """
        Add or remove a favourite.

        Returns True if the verse is now a favourite. Raises ValueError for
        unknown verses.
        """
        with self.database.transaction() as cursor:
            cursor.execute("SELECT 1 FROM verses WHERE verseId = ?", (verseId,))
            if cursor.fetchone() is None:
                raise ValueError(f"Verse not found: {verseId}")

            cursor.execute(
                "DELETE FROM favouriteVerses WHERE userId = ? AND verseId = ?",
                (userId, verseId)
            )
            if cursor.rowcount:
                return False

            cursor.execute("""
                INSERT INTO favouriteVerses (userId, verseId, createdAt)
                VALUES (?, ?, ?)
            """, (userId, verseId, toIso(utcNow())))
            return True

    def favourites(self, userId: int) -> List[FavouriteVerse]:
        rows = self.database.query(f"""
            SELECT f.favouriteId, f.userId, f.verseId, f.createdAt, {_VERSE_COLUMNS}
            FROM favouriteVerses f
            JOIN verses v ON v.verseId = f.verseId
            WHERE f.userId = ?
            ORDER BY f.createdAt DESC, f.favouriteId DESC
        """, (userId,))
        return [
            FavouriteVerse(
                favouriteId=row['favouriteId'],
                userId=row['userId'],
                verseId=row['verseId'],
                verse=Verse.fromRow(row, prefix='v_'),
                createdAt=fromIso(row['createdAt'])
            )
            for row in rows
        ]
