"""Configuration models describing tagshelf settings."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from tagshelf.ids import ROOT_COLLECTION_ID, SYSTEM_TAGS_ID


class TagShelfBaseModel(BaseModel):
    """Shared configuration for tagshelf Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class LibrarySettings(TagShelfBaseModel):
    """Where the JSON backend keeps its document.

    Attributes:
        location: Directory holding the library document and logs.
        filename: Name of the library document.
    """

    location: str = "~/.tagshelf"
    filename: str = "library.json"


class ReconcileSettings(TagShelfBaseModel):
    """Options governing file list reconciliation.

    Attributes:
        max_concurrent_checks: Upper bound on simultaneous existence checks.
        preserve_identity: Reuse in-memory file objects for ids present on both
            sides instead of rebuilding the whole list.
    """

    max_concurrent_checks: int = Field(default=64, ge=1)
    preserve_identity: bool = False


class HierarchySettings(TagShelfBaseModel):
    """Defaults for the tag hierarchy.

    Attributes:
        root_name: Display name of the root collection.
        default_expanded: Collection ids expanded when a session starts.
        new_collection_name: Name given to collections created without one.
        new_tag_name: Name given to tags created without one.
    """

    root_name: str = "Hierarchy"
    default_expanded: List[str] = Field(
        default_factory=lambda: [ROOT_COLLECTION_ID, SYSTEM_TAGS_ID]
    )
    new_collection_name: str = "New collection"
    new_tag_name: str = "New tag"


class LoggingSettings(TagShelfBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 10
    backup_count: int = 5


class CLIOptions(TagShelfBaseModel):
    """CLI presentation defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        json_default: Whether commands emit JSON by default.
    """

    quiet_default: bool = False
    json_default: bool = False


class TagShelfConfig(TagShelfBaseModel):
    """Top-level configuration struct for tagshelf."""

    library: LibrarySettings = Field(default_factory=LibrarySettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    hierarchy: HierarchySettings = Field(default_factory=HierarchySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "TagShelfBaseModel",
    "LibrarySettings",
    "ReconcileSettings",
    "HierarchySettings",
    "LoggingSettings",
    "CLIOptions",
    "TagShelfConfig",
]
