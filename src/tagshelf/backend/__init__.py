"""Persistence backends for tagshelf."""

from .base import Backend
from .errors import LibraryError, MissingLibraryError
from .json_store import DEFAULT_LIBRARY_FILENAME, JsonBackend
from .models import LibraryState

__all__ = [
    "Backend",
    "JsonBackend",
    "DEFAULT_LIBRARY_FILENAME",
    "LibraryState",
    "LibraryError",
    "MissingLibraryError",
]
