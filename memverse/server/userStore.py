"""
User Store - SQLite-backed account and profile persistence.

Accounts live in the shared MemVerse database (users table) with bcrypt
password hashes.

- tokenVersion for JWT revocation (increments on password reset)
- Profile completion sets pace, translation and notification preferences
- Password reset one-time codes (passwordResets table)

Property of Uncompromising Sensors LLC.
"""

import bcrypt
import sqlite3
import orjson
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

from sdk.logging import getLogger
from memverse.core.database import Database
from memverse.core.models import Subscriber, fromIso, toIso, utcNow
from memverse.core.pace import parsePace


# Fields a profile submission must carry
PROFILE_FIELDS = ('versePace', 'bibleTranslation', 'inspirations', 'userName', 'selectedTime')


class UserStore:
    """
    SQLite user storage.

    User record structure (users table):
    {
        "userId": int,
        "email": "string",
        "passwordHash": "bcrypt hash",
        "userName": "string",
        "isProfileCompleted": 0|1,
        "versePace": "daily|weekly",
        "bibleTranslation": "KJV|NIV|...",
        "inspirations": "[json list]",
        "isSubscribed": 0|1,
        "lastVerseSentAt": "ISO timestamp",   # written only by delivery commits
        "tokenVersion": 1,
        "createdAt": "ISO timestamp",
        "updatedAt": "ISO timestamp"
    }
    """

    def __init__(self, database: Database):
        self.database = database
        self.log = getLogger()

    def getByEmail(self, email: str) -> Optional[Dict[str, Any]]:
        """Get user by email (includes password hash)"""
        row = self.database.queryOne(
            "SELECT * FROM users WHERE email = ?", (self._normalizeEmail(email),)
        )
        return dict(row) if row else None

    def getById(self, userId: int) -> Optional[Dict[str, Any]]:
        """Get user by ID (includes password hash)"""
        row = self.database.queryOne("SELECT * FROM users WHERE userId = ?", (userId,))
        return dict(row) if row else None

    def getDetails(self, userId: int) -> Optional[Subscriber]:
        """User profile as a Subscriber view"""
        row = self.database.queryOne("SELECT * FROM users WHERE userId = ?", (userId,))
        return Subscriber.fromRow(row) if row else None

    def create(self, email: str, password: str) -> Dict[str, Any]:
        """
        Create a new user.

        Returns the created user record (without password hash).
        """
        email = self._normalizeEmail(email)
        if not email or not password:
            raise ValueError("Email and password required")
        if self.getByEmail(email):
            raise ValueError(f"Email already registered: {email}")

        now = toIso(utcNow())
        passwordHash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())

        try:
            userId = self.database.insert("""
                INSERT INTO users (email, passwordHash, createdAt, updatedAt)
                VALUES (?, ?, ?, ?)
            """, (email, passwordHash.decode('utf-8'), now, now))
        except sqlite3.IntegrityError:
            raise ValueError(f"Email already registered: {email}") from None

        self.log.info(f"[UserStore] Created user {userId}: {email}")
        return self._sanitize(self.getById(userId))

    def verifyPassword(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Verify email and password.

        Returns user record (without hash) if valid, None otherwise.
        """
        user = self.getByEmail(email)
        if not user or not password:
            return None

        if bcrypt.checkpw(password.encode('utf-8'), user['passwordHash'].encode('utf-8')):
            return self._sanitize(user)
        return None

    def completeProfile(self, userId: int, profile: Dict[str, Any]) -> Optional[Subscriber]:
        """
        Store profile settings and mark the profile completed.

        Raises ValueError for missing fields and InvalidPaceError for an
        unrecognized pace. Returns None for unknown users.
        """
        values = self._validateProfile(profile)
        return self._writeProfile(userId, values, markCompleted=True)

    def updateProfile(self, userId: int, profile: Dict[str, Any]) -> Optional[Subscriber]:
        """Update profile settings; email may change if not taken"""
        values = self._validateProfile(profile)

        email = profile.get('email')
        if email:
            if not isinstance(email, str):
                raise ValueError("email must be a string")
            email = self._normalizeEmail(email)
            existing = self.getByEmail(email)
            if existing and existing['userId'] != userId:
                raise ValueError(f"Email already registered: {email}")
            values['email'] = email

        return self._writeProfile(userId, values, markCompleted=False)

    def _validateProfile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        missing = [name for name in PROFILE_FIELDS if not profile.get(name)]
        if missing:
            raise ValueError(f"Incomplete profile data: missing {', '.join(missing)}")

        inspirations = profile['inspirations']
        if not isinstance(inspirations, list):
            raise ValueError("inspirations must be a list")

        return {
            'versePace': parsePace(profile['versePace']).value,
            'bibleTranslation': str(profile['bibleTranslation']).strip().upper(),
            'userName': str(profile['userName']).strip(),
            'inspirations': orjson.dumps(inspirations).decode('utf-8'),
            'selectedTime': str(profile['selectedTime']),
            'enableNotification': int(bool(profile.get('enableNotification', True))),
            'isEmailNotification': int(bool(profile.get('isEmailNotification', True))),
            'isWebNotification': int(bool(profile.get('isWebNotification', False)))
        }

    def _writeProfile(self, userId: int, values: Dict[str, Any], markCompleted: bool) -> Optional[Subscriber]:
        values = dict(values)
        values['updatedAt'] = toIso(utcNow())
        if markCompleted:
            values['isProfileCompleted'] = 1

        assignments = ', '.join(f"{column} = ?" for column in values)
        rowcount = self.database.execute(
            f"UPDATE users SET {assignments} WHERE userId = ?",
            (*values.values(), userId)
        )
        if rowcount == 0:
            return None

        self.log.info(f"[UserStore] Updated profile for user {userId}, pace={values['versePace']}")
        return self.getDetails(userId)

    def savePasswordReset(self, email: str, otp: str, expiresAt: datetime):
        """Store (or replace) a pending reset code"""
        self.database.execute("""
            INSERT INTO passwordResets (email, otp, expiresAt)
            VALUES (?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET otp = excluded.otp, expiresAt = excluded.expiresAt
        """, (self._normalizeEmail(email), otp, toIso(expiresAt)))

    def getPasswordReset(self, email: str) -> Optional[Tuple[str, datetime]]:
        """Returns (otp, expiresAt) or None"""
        row = self.database.queryOne(
            "SELECT otp, expiresAt FROM passwordResets WHERE email = ?",
            (self._normalizeEmail(email),)
        )
        if not row:
            return None
        return row['otp'], fromIso(row['expiresAt'])

    def deletePasswordReset(self, email: str):
        self.database.execute(
            "DELETE FROM passwordResets WHERE email = ?", (self._normalizeEmail(email),)
        )

    def updatePassword(self, email: str, newPassword: str) -> Optional[Dict[str, Any]]:
        """
        Set a new password and increment tokenVersion.

        Incrementing tokenVersion invalidates all existing JWTs for this user.
        """
        passwordHash = bcrypt.hashpw(newPassword.encode('utf-8'), bcrypt.gensalt())
        rowcount = self.database.execute("""
            UPDATE users
            SET passwordHash = ?, tokenVersion = tokenVersion + 1, updatedAt = ?
            WHERE email = ?
        """, (passwordHash.decode('utf-8'), toIso(utcNow()), self._normalizeEmail(email)))
        if rowcount == 0:
            return None

        user = self.getByEmail(email)
        self.log.info(f"[UserStore] Reset password for {user['email']}, tokenVersion={user['tokenVersion']}")
        return self._sanitize(user)

    def _normalizeEmail(self, email: Optional[str]) -> str:
        return (email or '').strip().lower()

    def _sanitize(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Return user record without password hash"""
        return {k: v for k, v in user.items() if k != 'passwordHash'}
