"""
MemVerse HTTP server - JSON API over aiohttp.

All routes live under /memory-verse-api/v1 and answer with the envelope:
    {"status": "success", "message": ..., "data": ...}
    {"status": "error",   "message": ..., "error": ...}

Architecture invariants:
- Handlers never write delivery state directly; the dashboard goes through
  DashboardResolver and therefore the DeliveryOrchestrator
- Bearer JWT auth on every route except health, auth entry points and the
  public daily verse
- Internal failures surface as a generic "try again" message; only profile
  and pace problems are reported to the user as actionable

Property of Uncompromising Sensors LLC.
"""

import asyncio
import orjson
from aiohttp import web
from typing import Dict, Any, Optional

from memverse.core.dashboard import DashboardResolver
from memverse.core.errors import (
    DeliveryError, InvalidPaceError, NotEligibleError, ProfileIncompleteError
)
from memverse.core.subscriberStore import SubscriberStore
from memverse.core.verseStore import VerseStore
from memverse.server.auth import AuthManager, MIN_PASSWORD_LENGTH
from memverse.server.userStore import UserStore
from sdk.logging import getLogger

API_PREFIX = '/memory-verse-api/v1'


def _dumps(data: Any) -> str:
    return orjson.dumps(data).decode('utf-8')


def success(data: Any, message: str = 'successfully', status: int = 200) -> web.Response:
    return web.json_response({'status': 'success', 'message': message, 'data': data},
                             status=status, dumps=_dumps)


def failure(status: int, message: str, error: Any = None) -> web.Response:
    return web.json_response({'status': 'error', 'message': message, 'error': error or message},
                             status=status, dumps=_dumps)


def textField(data: Dict[str, Any], key: str, strip: bool = True) -> str:
    """String value of a JSON field; anything that is not a string reads as missing"""
    value = data.get(key)
    if not isinstance(value, str):
        return ''
    return value.strip() if strip else value


class MemVerseServer:
    """
    HTTP edge for MemVerse.

    Owns the aiohttp application; stores, auth and the dashboard resolver
    are injected so the same wiring serves main.py and tests.
    """

    def __init__(self, config: Dict[str, Any], authManager: AuthManager, userStore: UserStore,
                 subscriberStore: SubscriberStore, verseStore: VerseStore,
                 dashboard: DashboardResolver):
        self.config = config
        self.log = getLogger()

        self.authManager = authManager
        self.userStore = userStore
        self.subscriberStore = subscriberStore
        self.verseStore = verseStore
        self.dashboard = dashboard

        # aiohttp app
        self.app = web.Application()
        self._setupRoutes()

        self._runner = None
        self._site = None

    def _setupRoutes(self):
        """Setup aiohttp routes"""
        router = self.app.router
        router.add_get(f'{API_PREFIX}/health', self.handleHealth)

        # Auth
        router.add_post(f'{API_PREFIX}/auth/register', self.handleRegister)
        router.add_post(f'{API_PREFIX}/auth/login', self.handleLogin)
        router.add_post(f'{API_PREFIX}/auth/forget-password', self.handleForgetPassword)
        router.add_post(f'{API_PREFIX}/auth/reset-password', self.handleResetPassword)
        router.add_get(f'{API_PREFIX}/auth/me', self.handleAuthMe)
        router.add_post(f'{API_PREFIX}/auth/complete-profile', self.handleCompleteProfile)
        router.add_patch(f'{API_PREFIX}/auth/update-profile', self.handleUpdateProfile)

        # Memory verse
        router.add_get(f'{API_PREFIX}/memoryverse/daily-verse', self.handleDailyVerse)
        router.add_get(f'{API_PREFIX}/memoryverse/dashboard', self.handleDashboard)
        router.add_get(f'{API_PREFIX}/memoryverse/unsubscribe', self.handleUnsubscribe)
        router.add_patch(f'{API_PREFIX}/memoryverse/toggle-favourite-verse', self.handleToggleFavourite)
        router.add_get(f'{API_PREFIX}/memoryverse/get-favourite-verses', self.handleGetFavourites)
        router.add_post(f'{API_PREFIX}/memoryverse/save-note', self.handleSaveNote)

    async def start(self):
        """Start listening"""
        self.log.info("[Server] Starting...")

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        host = self.config.get('host', '0.0.0.0')
        port = self.config.get('port', 8080)

        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        self.log.info(f"[Server] Listening on {host}:{port}{API_PREFIX}")

    async def stop(self):
        """Stop Server"""
        self.log.info("[Server] Stopping...")

        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        await self.authManager.close()
        self.log.info("[Server] Stopped")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _getAuth(self, request: web.Request) -> Optional[Dict[str, Any]]:
        """Extract and validate bearer token"""
        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token:
            return None
        return self.authManager.validateToken(token.strip())

    async def _readJson(self, request: web.Request) -> Optional[Dict[str, Any]]:
        try:
            data = await request.json(loads=orjson.loads)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    # =========================================================================
    # Public handlers
    # =========================================================================

    async def handleHealth(self, request: web.Request) -> web.Response:
        """Health check endpoint"""
        return success({'status': 'ok'}, 'healthy')

    async def handleRegister(self, request: web.Request) -> web.Response:
        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        email = textField(data, 'email')
        password = textField(data, 'password', strip=False)
        if not email or not password:
            return failure(400, 'Missing required fields', {
                'email': 'Email is required',
                'password': 'Password is required'
            })
        if len(password) < MIN_PASSWORD_LENGTH:
            return failure(400, f'Password must be at least {MIN_PASSWORD_LENGTH} characters')

        try:
            result = await self.authManager.register(email, password)
        except Exception as e:
            self.log.error(f"[Server] Register error: {e}", exc_info=True)
            return failure(500, 'Failed to create user')

        if not result:
            return failure(409, 'Email already registered')
        return success(result, 'User registered successfully', status=201)

    async def handleLogin(self, request: web.Request) -> web.Response:
        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        email = textField(data, 'email')
        password = textField(data, 'password', strip=False)
        if not email or not password:
            return failure(400, 'Missing required fields', {
                'email': 'Email is required',
                'password': 'Password is required'
            })

        result = await self.authManager.login(email, password)
        if not result:
            return failure(401, 'Invalid credentials')
        return success(result, 'Ok')

    async def handleForgetPassword(self, request: web.Request) -> web.Response:
        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        email = textField(data, 'email')
        if not email:
            return failure(400, 'Missing required fields', {'email': 'Email is required'})

        sent = await self.authManager.forgetPassword(email)
        if not sent:
            return failure(400, 'Failed to process request')
        return success(True, 'OTP sent to email successfully')

    async def handleResetPassword(self, request: web.Request) -> web.Response:
        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        email = textField(data, 'email')
        otp = textField(data, 'otp')
        newPassword = textField(data, 'newPassword', strip=False)
        if not email or not otp or not newPassword:
            return failure(400, 'Missing required fields', {
                'email': 'Email is required',
                'otp': 'OTP is required',
                'newPassword': 'New password is required'
            })
        if len(newPassword) < MIN_PASSWORD_LENGTH:
            return failure(400, f'Password must be at least {MIN_PASSWORD_LENGTH} characters')

        user = await self.authManager.resetPassword(email, otp, newPassword)
        if not user:
            return failure(400, 'Failed to reset password', 'invalid or expired OTP')
        return success(True, 'Password reset successfully')

    async def handleDailyVerse(self, request: web.Request) -> web.Response:
        """Random verse for visitors; not recorded as a delivery"""
        translation = request.query.get('translation')
        try:
            verse = await asyncio.to_thread(self.verseStore.randomVerse, translation)
        except Exception as e:
            self.log.error(f"[Server] Daily verse error: {e}", exc_info=True)
            return failure(500, 'Failed to get daily verse')

        if verse is None:
            return failure(404, 'No verse available')
        return success(verse.toDict())

    # =========================================================================
    # Authenticated handlers
    # =========================================================================

    async def handleAuthMe(self, request: web.Request) -> web.Response:
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        subscriber = await asyncio.to_thread(self.userStore.getDetails, payload['userId'])
        if subscriber is None:
            return failure(401, 'Invalid token', 'user not found')
        return success(subscriber.toDict(), 'Token is valid')

    async def handleCompleteProfile(self, request: web.Request) -> web.Response:
        return await self._saveProfile(request, complete=True)

    async def handleUpdateProfile(self, request: web.Request) -> web.Response:
        return await self._saveProfile(request, complete=False)

    async def _saveProfile(self, request: web.Request, complete: bool) -> web.Response:
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid input')

        store = self.userStore.completeProfile if complete else self.userStore.updateProfile
        try:
            subscriber = await asyncio.to_thread(store, payload['userId'], data)
        except (ValueError, InvalidPaceError) as e:
            return failure(400, str(e))

        if subscriber is None:
            return failure(401, 'Unauthorized', 'user not found')

        message = 'Profile completed successfully' if complete else 'Profile updated successfully'
        return success(subscriber.toDict(), message)

    async def handleDashboard(self, request: web.Request) -> web.Response:
        """Current verse (delivering one if due) plus notes and history"""
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        try:
            view = await self.dashboard.resolve(payload['userId'])
        except ProfileIncompleteError as e:
            return failure(409, str(e))
        except InvalidPaceError as e:
            return failure(400, str(e))
        except NotEligibleError:
            return failure(401, 'Unauthorized', 'user not found')
        except DeliveryError as e:
            self.log.warning(f"[Server] Dashboard failed for user {payload['userId']}: {e}")
            return failure(500, 'Failed to get memory verse, please try again')
        except Exception as e:
            self.log.error(f"[Server] Dashboard error for user {payload['userId']}: {e}", exc_info=True)
            return failure(500, 'Failed to get memory verse, please try again')

        return success(view.toDict())

    async def handleUnsubscribe(self, request: web.Request) -> web.Response:
        """Toggle the subscription flag"""
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        subscribed = await asyncio.to_thread(self.subscriberStore.toggleSubscription, payload['userId'])
        if subscribed is None:
            return failure(401, 'Unauthorized', 'user not found')

        message = 'Subscribed successfully' if subscribed else 'Unsubscribed successfully'
        return success({'isSubscribed': subscribed}, message)

    async def handleToggleFavourite(self, request: web.Request) -> web.Response:
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        verseId = data.get('verseId')
        if not isinstance(verseId, int) or isinstance(verseId, bool):
            return failure(400, 'Missing required fields', {'verseId': 'Verse id is required'})

        try:
            isFavourite = await asyncio.to_thread(self.verseStore.toggleFavourite, payload['userId'], verseId)
        except ValueError as e:
            return failure(404, 'Verse not found', str(e))

        return success({'isFavourite': isFavourite})

    async def handleGetFavourites(self, request: web.Request) -> web.Response:
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        favourites = await asyncio.to_thread(self.verseStore.favourites, payload['userId'])
        return success([favourite.toDict() for favourite in favourites])

    async def handleSaveNote(self, request: web.Request) -> web.Response:
        payload = self._getAuth(request)
        if not payload:
            return failure(401, 'Unauthorized', 'user not logged in')

        data = await self._readJson(request)
        if data is None:
            return failure(400, 'Invalid JSON body')

        verseReference = textField(data, 'verseReference')
        content = textField(data, 'content')
        if not verseReference or not content:
            return failure(400, 'Missing required fields', {
                'verseReference': 'Verse reference is required',
                'content': 'Content is required'
            })

        noteId = await asyncio.to_thread(self.verseStore.saveNote, payload['userId'], verseReference, content)
        return success({'id': noteId}, 'Note saved successfully', status=201)
