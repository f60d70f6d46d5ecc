"""
SDK Logging - hierarchical logger with automatic name detection.

API:
    from sdk.logging import getLogger

    # Class-level (auto-detect once in __init__)
    class DeliveryOrchestrator:
        def __init__(self):
            self.log = getLogger()  # Auto: 'memverse.core.delivery.DeliveryOrchestrator'

        async def deliver(self, userId):
            self.log.info("Delivering", userId=userId)

    # Module-level (auto-detect once at import)
    log = getLogger()

    # Global configuration (optional, once at app startup)
    from sdk.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')

    # Delivery context (every record emitted inside carries userId / sweepTick)
    from sdk.logging import deliveryContext
    with deliveryContext(userId=7, sweepTick=3):
        log.info("Sending")
"""

from .logger import getLogger, configureLogging
from .context import (
    deliveryContext,
    getDeliveryContext,
    DeliveryContextFilter
)

__all__ = [
    'getLogger',
    'configureLogging',
    'deliveryContext',
    'getDeliveryContext',
    'DeliveryContextFilter'
]
