"""File list state: client files, reconciliation, and filesystem checks."""

from .client import ClientFile
from .fs import path_exists
from .store import FileStore, ReconcileResult

__all__ = ["ClientFile", "FileStore", "ReconcileResult", "path_exists"]
