"""Custom exceptions for the tracking store."""


class TrackingError(Exception):
    """Base exception for tracking store errors."""
