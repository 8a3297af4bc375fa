"""
Error taxonomy for the notification core.

Falling below an insight's sample threshold is not an error; the insight
is simply left out.
"""


class SmartNotificationError(Exception):
    """Base class for errors raised by this package."""


class StorageError(SmartNotificationError):
    """Persistence is unavailable or a write/read failed."""


class ValidationError(SmartNotificationError, ValueError):
    """A tracked event was malformed and never reached the event store."""


class NotificationNotFound(SmartNotificationError, KeyError):
    """No notification with the given id exists."""
