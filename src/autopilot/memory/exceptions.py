"""Custom exceptions for repository memory."""


class MemoryStoreError(Exception):
    """Memory could not be persisted."""
