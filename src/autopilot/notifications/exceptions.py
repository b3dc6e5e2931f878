"""Custom exceptions for notifications."""


class NotificationError(Exception):
    """A notification channel rejected or failed to receive a message."""
