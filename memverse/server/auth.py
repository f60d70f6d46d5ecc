"""
Authentication for the MemVerse API.

- JWT bearer tokens (HS256) with tokenVersion claim for revocation
- bcrypt password hashes in the users table (UserStore)
- Welcome mail on registration
- Password reset via 6-digit one-time code mailed to the user

Property of Uncompromising Sensors LLC.
"""

import asyncio
import secrets
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Callable, Set

from sdk.logging import getLogger
from memverse.core.models import utcNow
from memverse.server.userStore import UserStore

TOKEN_ISSUER = 'memory-verse-api'
OTP_EXPIRY_MINUTES = 10
MIN_PASSWORD_LENGTH = 6


class AuthManager:
    """
    Authentication manager backed by UserStore.

    bcrypt and SQLite calls block, so the coroutine methods push them to a
    worker thread. validateToken stays synchronous for use in request
    middleware.
    """

    def __init__(self, config: Dict[str, Any], userStore: UserStore, mailer=None,
                 clock: Callable[[], datetime] = utcNow):
        self.config = config
        self.userStore = userStore
        self.mailer = mailer
        self.clock = clock
        self.log = getLogger()

        self.secret = config.get('secret', 'dev-secret-change-in-production')
        self.tokenExpiry = config.get('tokenExpirySeconds', 86400)  # 24 hours default

        self._mailTasks: Set[asyncio.Task] = set()

        if self.secret == 'dev-secret-change-in-production':
            self.log.warning("[Auth] Using default JWT secret; set auth.secret or MEMVERSE_JWT_SECRET")

    async def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Authenticate user and generate token.

        Returns dict with token and user info, or None if auth fails.
        """
        if not email or not password:
            return None

        user = await asyncio.to_thread(self.userStore.verifyPassword, email, password)
        if not user:
            self.log.warning(f"[Auth] Login failed - invalid credentials: {email}")
            return None

        token = self._generateToken(user)
        self.log.info(f"[Auth] Login success: {user['email']}")

        return {
            'token': token,
            'userId': user['userId'],
            'email': user['email'],
            'isProfileCompleted': bool(user['isProfileCompleted'])
        }

    async def register(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Register a new user and log them in.

        Returns the login result, or None if the email is already taken.
        """
        try:
            await asyncio.to_thread(self.userStore.create, email, password)
        except ValueError as e:
            self.log.warning(f"[Auth] Registration failed: {e}")
            return None

        result = await self.login(email, password)
        if result and self.mailer is not None:
            self._sendInBackground(self.mailer.sendWelcome(result['email']), "welcome mail")

        self.log.info(f"[Auth] Registration: {email}")
        return result

    def _generateToken(self, user: Dict[str, Any]) -> str:
        """Generate JWT token for user with tokenVersion"""
        expiresAt = self.clock() + timedelta(seconds=self.tokenExpiry)

        payload = {
            'userId': user['userId'],
            'email': user['email'],
            'tokenVersion': user.get('tokenVersion', 1),
            'iss': TOKEN_ISSUER,
            'exp': expiresAt
        }

        return jwt.encode(payload, self.secret, algorithm='HS256')

    def validateToken(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate JWT token including tokenVersion check.

        Returns payload dict if valid, None otherwise.
        """
        if not token:
            return None

        try:
            payload = jwt.decode(token, self.secret, algorithms=['HS256'], issuer=TOKEN_ISSUER)

            user = self.userStore.getById(payload.get('userId'))
            if not user:
                self.log.warning(f"[Auth] Token user no longer exists: {payload.get('email')}")
                return None

            # Check tokenVersion matches (for revocation support)
            tokenVersion = payload.get('tokenVersion', 0)
            userTokenVersion = user.get('tokenVersion', 1)
            if tokenVersion != userTokenVersion:
                self.log.warning(f"[Auth] Token version mismatch for {payload.get('email')}: "
                                 f"token={tokenVersion}, user={userTokenVersion}")
                return None

            return payload

        except jwt.ExpiredSignatureError:
            self.log.warning("[Auth] Token expired")
            return None
        except jwt.InvalidTokenError as e:
            self.log.warning(f"[Auth] Invalid token: {e}")
            return None

    async def forgetPassword(self, email: str) -> bool:
        """
        Issue a one-time reset code and mail it.

        Returns False for unknown emails, when mail is disabled, or when the
        mail could not be sent.
        """
        user = await asyncio.to_thread(self.userStore.getByEmail, email)
        if not user:
            self.log.warning(f"[Auth] Password reset requested for unknown email: {email}")
            return False

        if self.mailer is None or not self.mailer.enabled:
            self.log.warning(f"[Auth] Mail disabled, no reset code issued for {user['email']}")
            return False

        otp = f"{secrets.randbelow(1_000_000):06d}"
        expiresAt = self.clock() + timedelta(minutes=OTP_EXPIRY_MINUTES)
        await asyncio.to_thread(self.userStore.savePasswordReset, user['email'], otp, expiresAt)

        try:
            await self.mailer.sendPasswordReset(user['email'], otp, OTP_EXPIRY_MINUTES)
        except Exception as e:
            self.log.error(f"[Auth] Failed to send reset code to {user['email']}: {e}")
            return False

        self.log.info(f"[Auth] Reset code issued for {user['email']}")
        return True

    def verifyOtp(self, email: str, otp: str) -> bool:
        saved = self.userStore.getPasswordReset(email)
        if not saved:
            return False

        savedOtp, expiresAt = saved
        if self.clock() > expiresAt:
            self.log.warning(f"[Auth] Reset code expired for {email}")
            return False
        return secrets.compare_digest(savedOtp, str(otp))

    async def resetPassword(self, email: str, otp: str, newPassword: str) -> Optional[Dict[str, Any]]:
        """
        Reset a password with a valid one-time code.

        Increments tokenVersion, invalidating all existing JWTs. Returns None
        for a short password or an invalid/expired code.
        """
        if not newPassword or len(newPassword) < MIN_PASSWORD_LENGTH:
            return None

        valid = await asyncio.to_thread(self.verifyOtp, email, otp)
        if not valid:
            return None

        user = await asyncio.to_thread(self.userStore.updatePassword, email, newPassword)
        if user is None:
            return None

        await asyncio.to_thread(self.userStore.deletePasswordReset, email)
        return user

    def _sendInBackground(self, coro, label: str):
        """Fire-and-forget mail; failures are logged"""
        task = asyncio.create_task(coro)
        self._mailTasks.add(task)

        def _done(t: asyncio.Task):
            self._mailTasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                self.log.error(f"[Auth] Failed to send {label}: {t.exception()}")

        task.add_done_callback(_done)

    async def close(self):
        """Wait for outstanding background mail"""
        if self._mailTasks:
            await asyncio.gather(*self._mailTasks, return_exceptions=True)
