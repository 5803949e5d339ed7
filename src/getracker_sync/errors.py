"""Custom exceptions for GE Tracker sync."""


class GeTrackerSyncError(Exception):
    """Base exception for GE Tracker sync errors."""
    pass


class ConfigurationError(GeTrackerSyncError):
    """Raised when configuration is invalid."""
    pass


class RecordDecodeError(GeTrackerSyncError):
    """Raised when a stored offer record cannot be decoded."""
    pass
