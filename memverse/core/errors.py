"""
Delivery error taxonomy.

Validation and eligibility errors propagate to the immediate caller.
DeliveryConflictError is recovered inside the orchestrator and
NotificationFailedError is only ever logged.
"""


class DeliveryError(Exception):
    """Base class for delivery engine errors"""
    pass


class InvalidPaceError(DeliveryError):
    """Pace is not one of the recognized cadences"""

    def __init__(self, pace):
        self.pace = pace
        super().__init__(f"invalid verse pace: {pace}")


class ProfileIncompleteError(DeliveryError):
    """User has not completed profile setup"""

    def __init__(self, userId):
        self.userId = userId
        super().__init__("please complete your profile to receive memory verses")


class NotEligibleError(DeliveryError):
    """Subscriber is missing or cannot receive verses"""

    def __init__(self, userId, reason: str = "user not found"):
        self.userId = userId
        self.reason = reason
        super().__init__(f"user {userId} not eligible: {reason}")


class NoContentForTranslationError(DeliveryError):
    """No verses exist for the subscriber's translation"""

    def __init__(self, translation):
        self.translation = translation
        super().__init__(f"no verses available for translation: {translation}")


class NoArtifactAvailableError(DeliveryError):
    """Not due, yet nothing was ever delivered"""

    def __init__(self, userId):
        self.userId = userId
        super().__init__("no verse available")


class DeliveryConflictError(DeliveryError):
    """Conditional commit lost the race to another delivery"""

    def __init__(self, userId):
        self.userId = userId
        super().__init__(f"delivery for user {userId} already committed elsewhere")


class NotificationFailedError(DeliveryError):
    """Notification could not be sent"""
    pass


class StorageError(DeliveryError):
    """Opaque storage failure; retry later"""
    pass


class DeliveryTimeoutError(StorageError):
    """A store call exceeded its I/O timeout"""
    pass
