"""
Delivery logging context

Carries the subscriber being processed (userId) and the sweep tick number
through async call chains so every log record emitted during a delivery
can be correlated without threading the values through each call.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional

_userId: ContextVar[Optional[int]] = ContextVar('userId', default=None)
_sweepTick: ContextVar[Optional[int]] = ContextVar('sweepTick', default=None)


class DeliveryContextFilter(logging.Filter):
    """Logging filter that stamps the current delivery context onto records"""

    def filter(self, record):
        userId = _userId.get()
        sweepTick = _sweepTick.get()

        if userId is not None and not hasattr(record, 'userId'):
            record.userId = userId
        if sweepTick is not None and not hasattr(record, 'sweepTick'):
            record.sweepTick = sweepTick

        return True


@contextmanager
def deliveryContext(userId: Optional[int] = None, sweepTick: Optional[int] = None):
    """
    Bind delivery context for the duration of a block.

    Each asyncio task runs in a copy of the current context, so values set
    inside a per-subscriber task never leak into sibling tasks.
    """
    userToken = _userId.set(userId) if userId is not None else None
    tickToken = _sweepTick.set(sweepTick) if sweepTick is not None else None
    try:
        yield
    finally:
        if tickToken is not None:
            _sweepTick.reset(tickToken)
        if userToken is not None:
            _userId.reset(userToken)


def getDeliveryContext() -> dict:
    """Get current delivery context"""
    return {
        'userId': _userId.get(),
        'sweepTick': _sweepTick.get()
    }

