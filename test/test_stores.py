"""
SQLite store tests: subscribers, verses, users.

Run: python -m pytest test/test_stores.py -v
"""

import pytest
from datetime import timedelta

from memverse.core.errors import InvalidPaceError
from memverse.server.userStore import UserStore
from conftest import START, SEED_VERSES, addUser


PROFILE = {
    'versePace': 'Weekly',
    'bibleTranslation': 'kjv',
    'inspirations': ['hope', 'peace'],
    'userName': 'Ruth',
    'selectedTime': '07:30'
}


class TestSubscriberStore:

    def test_list_subscribed_filters(self, subscriberStore, database):
        active = addUser(database, 'a@example.com')
        addUser(database, 'b@example.com', isSubscribed=False)
        addUser(database, 'c@example.com', isProfileCompleted=False)

        assert [s.userId for s in subscriberStore.listSubscribed()] == [active]

    def test_commit_delivery_compare_and_swap(self, subscriberStore, verseStore, database):
        userId = addUser(database, 'cas@example.com')
        verse = verseStore.pickVerse(userId, 'KJV')

        assert subscriberStore.commitDelivery(userId, verse.verseId, None, START)
        # Same expected marker a second time loses
        assert not subscriberStore.commitDelivery(userId, verse.verseId, None, START + timedelta(seconds=1))
        assert subscriberStore.commitDelivery(userId, verse.verseId, START, START + timedelta(days=1))

        assert subscriberStore.getSubscriber(userId).lastVerseSentAt == START + timedelta(days=1)
        assert verseStore.countDeliveries(userId) == 2

    def test_toggle_subscription(self, subscriberStore, database):
        userId = addUser(database, 'toggle@example.com')
        assert subscriberStore.toggleSubscription(userId) is False
        assert subscriberStore.toggleSubscription(userId) is True
        assert subscriberStore.toggleSubscription(999) is None


class TestVerseStore:

    def test_seed_is_idempotent(self, verseStore, tempDir):
        assert verseStore.addVerses(SEED_VERSES) == 0

        seedFile = tempDir / 'verses.json'
        seedFile.write_text('{"verses": [{"reference": "Micah 6:8", "translation": "kjv", '
                            '"verse": "He hath shewed thee, O man, what is good."}]}')
        assert verseStore.seedFromFile(str(seedFile)) == 1
        assert verseStore.seedFromFile(str(seedFile)) == 0
        assert verseStore.seedFromFile(str(tempDir / 'missing.json')) == 0

    def test_add_verse_requires_fields(self, verseStore):
        with pytest.raises(ValueError):
            verseStore.addVerses([{'reference': 'Jude 1:2', 'translation': 'KJV'}])

    def test_pick_prefers_unseen(self, subscriberStore, verseStore, database):
        userId = addUser(database, 'seen@example.com')
        seen = set()
        marker = None
        for day in range(3):
            verse = verseStore.pickVerse(userId, 'kjv')
            assert verse.verseId not in seen
            seen.add(verse.verseId)
            now = START + timedelta(days=day)
            assert subscriberStore.commitDelivery(userId, verse.verseId, marker, now)
            marker = now

        # All three KJV verses seen; selection falls back to any of them
        assert verseStore.pickVerse(userId, 'KJV').verseId in seen
        assert verseStore.pickVerse(userId, 'ESV') is None

    def test_random_verse(self, verseStore):
        assert verseStore.randomVerse('web').reference == 'John 3:16'
        assert verseStore.randomVerse() is not None
        assert verseStore.randomVerse('ESV') is None

    def test_notes_newest_first(self, verseStore, database):
        userId = addUser(database, 'notes@example.com')
        first = verseStore.saveNote(userId, 'John 3:16', 'first')
        second = verseStore.saveNote(userId, 'Psalm 23:1', 'second')

        notes = verseStore.notes(userId)
        assert [n.noteId for n in notes] == [second, first]
        assert notes[0].toDict()['verseReference'] == 'Psalm 23:1'

    def test_toggle_favourite(self, verseStore, database):
        userId = addUser(database, 'fav@example.com')
        verse = verseStore.randomVerse('KJV')

        assert verseStore.toggleFavourite(userId, verse.verseId) is True
        assert [f.verse.reference for f in verseStore.favourites(userId)] == [verse.reference]

        assert verseStore.toggleFavourite(userId, verse.verseId) is False
        assert verseStore.favourites(userId) == []

        with pytest.raises(ValueError):
            verseStore.toggleFavourite(userId, 99999)


class TestUserStore:

    @pytest.fixture
    def userStore(self, database):
        return UserStore(database)

    def test_create_and_verify(self, userStore):
        user = userStore.create('Ruth@Example.com ', 'secret123')

        assert user['email'] == 'ruth@example.com'
        assert 'passwordHash' not in user
        assert userStore.verifyPassword('ruth@example.com', 'secret123')['userId'] == user['userId']
        assert userStore.verifyPassword('ruth@example.com', 'wrong') is None
        assert userStore.verifyPassword('nobody@example.com', 'secret123') is None

    def test_duplicate_email(self, userStore):
        userStore.create('dup@example.com', 'secret123')
        with pytest.raises(ValueError):
            userStore.create('DUP@example.com', 'other123')

    def test_complete_profile(self, userStore):
        user = userStore.create('profile@example.com', 'secret123')

        subscriber = userStore.completeProfile(user['userId'], PROFILE)

        assert subscriber.isProfileCompleted
        assert subscriber.pace == 'weekly'
        assert subscriber.bibleTranslation == 'KJV'
        assert subscriber.inspirations == ['hope', 'peace']
        assert subscriber.lastVerseSentAt is None

    def test_incomplete_profile_rejected(self, userStore):
        user = userStore.create('partial@example.com', 'secret123')
        with pytest.raises(ValueError):
            userStore.completeProfile(user['userId'], {**PROFILE, 'inspirations': []})
        with pytest.raises(InvalidPaceError):
            userStore.completeProfile(user['userId'], {**PROFILE, 'versePace': 'monthly'})
        assert not userStore.getDetails(user['userId']).isProfileCompleted

    def test_update_profile_email_conflict(self, userStore):
        first = userStore.create('one@example.com', 'secret123')
        userStore.create('two@example.com', 'secret123')

        with pytest.raises(ValueError):
            userStore.updateProfile(first['userId'], {**PROFILE, 'email': 'two@example.com'})

        updated = userStore.updateProfile(first['userId'], {**PROFILE, 'versePace': 'daily', 'email': 'uno@example.com'})
        assert updated.email == 'uno@example.com'
        assert updated.pace == 'daily'

    def test_password_reset_bumps_token_version(self, userStore):
        user = userStore.create('reset@example.com', 'secret123')
        userStore.savePasswordReset('reset@example.com', '123456', START)
        assert userStore.getPasswordReset('RESET@example.com') == ('123456', START)

        updated = userStore.updatePassword('reset@example.com', 'newsecret')
        assert updated['tokenVersion'] == user['tokenVersion'] + 1
        assert userStore.verifyPassword('reset@example.com', 'newsecret')

        userStore.deletePasswordReset('reset@example.com')
        assert userStore.getPasswordReset('reset@example.com') is None
        assert userStore.updatePassword('ghost@example.com', 'whatever') is None
