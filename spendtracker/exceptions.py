"""Custom exception classes for the expense tracker."""


class SpendTrackerError(Exception):
    """Base exception for the expense tracker."""
    pass


class ConfigError(SpendTrackerError):
    """Configuration-related errors."""
    pass


class ValidationError(SpendTrackerError, ValueError):
    """Invalid transaction or form input."""
    pass


class NotFoundError(SpendTrackerError, LookupError):
    """Transaction lookup failed."""
    pass


class StorageError(SpendTrackerError):
    """Save file and import errors."""
    pass
