"""
AuthManager tests: tokens, revocation and reset codes.

The clock starts at wall time because PyJWT checks exp against the real
clock when decoding.

Run: python -m pytest test/test_auth.py -v
"""

import jwt
import pytest
from datetime import timedelta

from memverse.core.models import utcNow
from memverse.server.auth import AuthManager, TOKEN_ISSUER
from memverse.server.mailer import Mailer
from memverse.server.userStore import UserStore
from conftest import FakeClock


SECRET = 'memverse-test-secret-0123456789abcdef'


class FakeMailer:
    enabled = True

    def __init__(self, fail=False):
        self.fail = fail
        self.codes = {}
        self.welcomed = []

    async def sendWelcome(self, email):
        self.welcomed.append(email)

    async def sendPasswordReset(self, email, otp, minutes):
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.codes[email] = (otp, minutes)


@pytest.fixture
def userStore(database):
    return UserStore(database)


@pytest.fixture
def wallClock():
    return FakeClock(utcNow())


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def auth(userStore, mailer, wallClock):
    return AuthManager({'secret': SECRET}, userStore, mailer, clock=wallClock)


class TestTokens:

    @pytest.mark.asyncio
    async def test_register_returns_valid_token(self, auth, mailer):
        result = await auth.register('Naomi@Example.com', 'secret123')
        await auth.close()

        payload = auth.validateToken(result['token'])
        assert payload['email'] == 'naomi@example.com'
        assert payload['iss'] == TOKEN_ISSUER
        assert result['isProfileCompleted'] is False
        assert mailer.welcomed == ['naomi@example.com']

    @pytest.mark.asyncio
    async def test_duplicate_register_returns_none(self, auth):
        assert await auth.register('dup@example.com', 'secret123')
        assert await auth.register('DUP@example.com', 'secret456') is None
        await auth.close()

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, userStore, wallClock):
        userStore.create('late@example.com', 'secret123')
        wallClock.advance(days=-2)
        auth = AuthManager({'secret': SECRET}, userStore, clock=wallClock)

        result = await auth.login('late@example.com', 'secret123')

        assert auth.validateToken(result['token']) is None

    @pytest.mark.asyncio
    async def test_foreign_issuer_rejected(self, auth, userStore):
        user = userStore.create('iss@example.com', 'secret123')
        token = jwt.encode({'userId': user['userId'], 'email': user['email'], 'tokenVersion': 1,
                            'iss': 'someone-else', 'exp': utcNow() + timedelta(hours=1)},
                           SECRET, algorithm='HS256')

        assert auth.validateToken(token) is None
        assert auth.validateToken('') is None

    @pytest.mark.asyncio
    async def test_login_failures(self, auth, userStore):
        userStore.create('ok@example.com', 'secret123')
        assert await auth.login('ok@example.com', 'wrong-pass') is None
        assert await auth.login('', 'secret123') is None
        assert await auth.login('ok@example.com', 'secret123')


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_reset_flow(self, auth, userStore, mailer):
        before = await auth.register('reset@example.com', 'secret123')
        await auth.close()

        assert await auth.forgetPassword('reset@example.com')
        otp, minutes = mailer.codes['reset@example.com']
        assert minutes == 10

        assert await auth.resetPassword('reset@example.com', otp, '123') is None
        user = await auth.resetPassword('reset@example.com', otp, 'newsecret1')

        assert user['tokenVersion'] == 2
        assert auth.validateToken(before['token']) is None
        assert userStore.getPasswordReset('reset@example.com') is None

    @pytest.mark.asyncio
    async def test_code_expires_after_ten_minutes(self, auth, mailer, userStore, wallClock):
        userStore.create('slow@example.com', 'secret123')
        assert await auth.forgetPassword('slow@example.com')
        otp, _ = mailer.codes['slow@example.com']

        wallClock.advance(minutes=10, seconds=1)

        assert not auth.verifyOtp('slow@example.com', otp)
        assert await auth.resetPassword('slow@example.com', otp, 'newsecret1') is None

    @pytest.mark.asyncio
    async def test_unknown_email_and_mail_failure(self, userStore, wallClock):
        userStore.create('known@example.com', 'secret123')
        auth = AuthManager({'secret': SECRET}, userStore, FakeMailer(fail=True), clock=wallClock)

        assert not await auth.forgetPassword('ghost@example.com')
        assert not await auth.forgetPassword('known@example.com')

        noMail = AuthManager({'secret': SECRET}, userStore, clock=wallClock)
        assert not await noMail.forgetPassword('known@example.com')

    @pytest.mark.asyncio
    async def test_disabled_mail_issues_no_code(self, userStore, wallClock):
        userStore.create('offline@example.com', 'secret123')
        auth = AuthManager({'secret': SECRET}, userStore, Mailer({'enabled': False}), clock=wallClock)

        assert not await auth.forgetPassword('offline@example.com')
        assert userStore.getPasswordReset('offline@example.com') is None
