"""Library persistence errors."""


class LibraryError(Exception):
    """Base exception for library document operations."""


class MissingLibraryError(LibraryError):
    """Raised when no library document exists yet."""
