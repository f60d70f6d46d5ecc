"""
MemVerse Database Implementation

SQLite-backed storage shared by the user, subscriber and verse stores.

Architecture Invariants:
- verseHistory is append-only: rows are never updated or deleted here
- The newest verseHistory row per user carries the same timestamp as
  users.lastVerseSentAt; both are written in one transaction
- Writes are serialized through a single write connection; reads use a
  dedicated read connection (WAL allows them to proceed concurrently)

Schema:
- users: account, profile and delivery marker (lastVerseSentAt)
- verses: memory verse catalogue, unique per (reference, translation)
- verseHistory: delivery log
- userNotes, favouriteVerses: dashboard side data
- passwordResets: pending one-time reset codes
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from sdk.logging import getLogger


class DatabaseError(Exception):
    """Database operation error"""
    pass


class Database:
    """
    SQLite database with separate write and read connections.

    Store classes build their queries on top of execute/query/transaction and
    never touch the connections directly.
    """

    def __init__(self, dbPath: str):
        """
        Initialize database connection.

        Args:
            dbPath: Path to SQLite database file
        """
        self.log = getLogger()
        self.dbPath = Path(dbPath)
        self.dbPath.parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None
        self._readConn: Optional[sqlite3.Connection] = None
        self._writeLock = threading.Lock()
        self._readLock = threading.Lock()
        self._connect()
        self._initSchema()

    def _connect(self):
        """Open the write connection"""
        try:
            self.conn = sqlite3.connect(
                str(self.dbPath),
                check_same_thread=False,  # Used from asyncio.to_thread workers
                isolation_level='DEFERRED',
                timeout=30.0
            )
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open database {self.dbPath}: {e}") from e

        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.commit()

    def _getReadConnection(self) -> sqlite3.Connection:
        """Lazily open the dedicated read connection"""
        if self._readConn is None:
            self._readConn = sqlite3.connect(
                str(self.dbPath),
                check_same_thread=False,
                timeout=30.0
            )
            self._readConn.row_factory = sqlite3.Row
            self._readConn.execute("PRAGMA query_only=ON")
        return self._readConn

    def _initSchema(self):
        """Create tables and indexes if missing"""
        cursor = self.conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    userId INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    passwordHash TEXT NOT NULL,
                    userName TEXT,
                    isProfileCompleted INTEGER NOT NULL DEFAULT 0,
                    versePace TEXT,
                    bibleTranslation TEXT,
                    enableNotification INTEGER NOT NULL DEFAULT 1,
                    isEmailNotification INTEGER NOT NULL DEFAULT 1,
                    isWebNotification INTEGER NOT NULL DEFAULT 0,
                    inspirations TEXT,
                    selectedTime TEXT,
                    isSubscribed INTEGER NOT NULL DEFAULT 1,
                    lastVerseSentAt TEXT,
                    tokenVersion INTEGER NOT NULL DEFAULT 1,
                    createdAt TEXT NOT NULL,
                    updatedAt TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS verses (
                    verseId INTEGER PRIMARY KEY AUTOINCREMENT,
                    reference TEXT NOT NULL,
                    text TEXT NOT NULL,
                    translation TEXT NOT NULL,
                    createdAt TEXT NOT NULL,
                    UNIQUE(reference, translation)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_verses_translation
                ON verses(translation)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS verseHistory (
                    historyId INTEGER PRIMARY KEY AUTOINCREMENT,
                    userId INTEGER NOT NULL,
                    verseId INTEGER NOT NULL,
                    deliveredAt TEXT NOT NULL,
                    FOREIGN KEY (userId) REFERENCES users(userId),
                    FOREIGN KEY (verseId) REFERENCES verses(verseId)
                )
            """)
            # Newest-first lookups per user
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_verseHistory_user_delivered
                ON verseHistory(userId, deliveredAt)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS userNotes (
                    noteId INTEGER PRIMARY KEY AUTOINCREMENT,
                    userId INTEGER NOT NULL,
                    verseReference TEXT NOT NULL,
                    content TEXT NOT NULL,
                    createdAt TEXT NOT NULL,
                    updatedAt TEXT NOT NULL,
                    FOREIGN KEY (userId) REFERENCES users(userId)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS favouriteVerses (
                    favouriteId INTEGER PRIMARY KEY AUTOINCREMENT,
                    userId INTEGER NOT NULL,
                    verseId INTEGER NOT NULL,
                    createdAt TEXT NOT NULL,
                    UNIQUE(userId, verseId),
                    FOREIGN KEY (userId) REFERENCES users(userId),
                    FOREIGN KEY (verseId) REFERENCES verses(verseId)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS passwordResets (
                    email TEXT PRIMARY KEY NOT NULL,
                    otp TEXT NOT NULL,
                    expiresAt TEXT NOT NULL
                )
            """)

            self.conn.commit()
            self.log.info(f"[Database] Schema ready at {self.dbPath}")

        except sqlite3.Error as e:
            self.conn.rollback()
            raise DatabaseError(f"Schema initialization failed: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Serialized write transaction.

        Commits on normal exit, rolls back on any exception.
        """
        with self._writeLock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
            finally:
                cursor.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single write statement in its own transaction, returns rowcount"""
        with self.transaction() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single INSERT in its own transaction, returns the new rowid"""
        with self.transaction() as cursor:
            cursor.execute(sql, params)
            return cursor.lastrowid

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read query and return all rows"""
        with self._readLock:
            conn = self._getReadConnection()
            return conn.execute(sql, params).fetchall()

    def queryOne(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        """Run a read query and return the first row or None"""
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def close(self):
        """Close connections"""
        with self._readLock:
            if self._readConn:
                self._readConn.close()
                self._readConn = None
        with self._writeLock:
            if self.conn:
                self.conn.close()
                self.conn = None
        self.log.info("[Database] Closed")
