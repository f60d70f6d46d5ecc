"""
Pace policy: decides whether a subscriber is due for a new verse.

Pure functions only. The caller always supplies `now`.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional, Union

from .errors import InvalidPaceError
from .models import Pace


PACE_INTERVALS: Dict[Pace, timedelta] = {
    Pace.DAILY: timedelta(hours=24),
    Pace.WEEKLY: timedelta(hours=168)
}


def parsePace(value: Union[str, Pace, None]) -> Pace:
    """Normalize a stored or submitted pace; raises InvalidPaceError"""
    if isinstance(value, Pace):
        return value
    if not isinstance(value, str):
        raise InvalidPaceError(value)
    try:
        return Pace(value.strip().lower())
    except ValueError:
        raise InvalidPaceError(value) from None


def paceInterval(pace: Union[str, Pace, None]) -> timedelta:
    """Minimum spacing between deliveries for a pace"""
    return PACE_INTERVALS[parsePace(pace)]


def isDue(pace: Union[str, Pace, None], lastDeliveredAt: Optional[datetime], now: datetime) -> bool:
    """
    True if a new verse should be delivered.

    Due when nothing was delivered yet, or when at least the pace's interval
    (24h daily, 168h weekly) has elapsed since the last delivery.
    """
    interval = paceInterval(pace)
    if lastDeliveredAt is None:
        return True
    return now - lastDeliveredAt >= interval
