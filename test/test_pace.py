"""
Pace policy tests.

Run: python -m pytest test/test_pace.py -v
"""

from datetime import timedelta

import pytest

from memverse.core.errors import InvalidPaceError
from memverse.core.models import Pace
from memverse.core.pace import isDue, paceInterval, parsePace
from conftest import START


class TestParsePace:

    def test_known_paces(self):
        assert parsePace('daily') is Pace.DAILY
        assert parsePace('weekly') is Pace.WEEKLY
        assert parsePace(Pace.WEEKLY) is Pace.WEEKLY

    def test_normalizes_case_and_whitespace(self):
        assert parsePace(' Daily ') is Pace.DAILY
        assert parsePace('WEEKLY') is Pace.WEEKLY

    @pytest.mark.parametrize('value', ['monthly', '', 'day', None, 7])
    def test_unknown_pace_rejected(self, value):
        with pytest.raises(InvalidPaceError) as excInfo:
            parsePace(value)
        assert excInfo.value.pace == value

    def test_intervals(self):
        assert paceInterval('daily') == timedelta(hours=24)
        assert paceInterval('weekly') == timedelta(hours=168)


class TestIsDue:

    def test_never_delivered_is_due(self):
        assert isDue('daily', None, START)
        assert isDue('weekly', None, START)

    def test_daily_boundary(self):
        """Exactly 24h is due; one second short is not"""
        assert not isDue('daily', START, START + timedelta(hours=23, minutes=59, seconds=59))
        assert isDue('daily', START, START + timedelta(hours=24))
        assert isDue('daily', START, START + timedelta(hours=30))

    def test_weekly_boundary(self):
        assert not isDue('weekly', START, START + timedelta(hours=167, minutes=59, seconds=59))
        assert isDue('weekly', START, START + timedelta(hours=168))

    def test_weekly_not_due_after_a_day(self):
        assert not isDue('weekly', START, START + timedelta(hours=24))

    def test_last_delivery_in_future_is_not_due(self):
        assert not isDue('daily', START + timedelta(hours=1), START)

    def test_invalid_pace_raises_even_without_history(self):
        """No silent fallback to a default pace"""
        with pytest.raises(InvalidPaceError):
            isDue('fortnightly', None, START)
        with pytest.raises(InvalidPaceError):
            isDue(None, START, START + timedelta(days=30))
