"""JSON backend tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tagshelf.backend import (
    DEFAULT_LIBRARY_FILENAME,
    JsonBackend,
    LibraryError,
    LibraryState,
    MissingLibraryError,
)
from tagshelf.errors import BackendUnavailableError
from tagshelf.hierarchy import TagCollectionTree
from tagshelf.models import FileRecord


def _state() -> LibraryState:
    """Return a sample library with one tagged file.

    Returns:
        LibraryState: Library populated with one file record.
    """
    record = FileRecord(path="/docs/file.pdf", tag_ids=["tag"])
    return LibraryState(files={record.id: record})


def test_initialize_creates_directory(tmp_path: Path) -> None:
    """Ensure initialize prepares the library directory.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    backend = JsonBackend(tmp_path / "library")

    directory = backend.initialize()

    assert directory.is_dir()
    assert backend.path == directory / DEFAULT_LIBRARY_FILENAME


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    """Ensure save followed by load returns the same library.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    backend = JsonBackend(tmp_path)
    state = _state()

    backend.save(state)
    loaded = backend.load()

    assert loaded.files.keys() == state.files.keys()
    assert loaded.updated_at >= loaded.created_at
    assert not backend.path.with_suffix(".json.tmp").exists()


def test_load_missing_library_raises(tmp_path: Path) -> None:
    backend = JsonBackend(tmp_path)

    with pytest.raises(MissingLibraryError):
        backend.load()


def test_load_invalid_library_raises(tmp_path: Path) -> None:
    """Ensure an invalid JSON payload raises LibraryError on load.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    backend = JsonBackend(tmp_path)
    backend.initialize()
    backend.path.write_text("not json", encoding="utf-8")

    with pytest.raises(LibraryError):
        backend.load()


def test_contract_operations_persist(tmp_path: Path) -> None:
    backend = JsonBackend(tmp_path)
    tree = TagCollectionTree()
    tag = tree.add_tag("urgent")

    async def scenario():
        created = await backend.create_file("f1", "/a.txt")
        await backend.create_file("f2", "/b.txt")
        await backend.save_file(created.model_copy(update={"tag_ids": [tag.id]}))
        await backend.save_hierarchy(tree.snapshot())
        found = await backend.search_files([tag.id])
        await backend.remove_file(created)
        await backend.remove_file(created)
        return found, await backend.fetch_files(), await backend.fetch_hierarchy()

    found, remaining, hierarchy = asyncio.run(scenario())

    assert [record.id for record in found] == ["f1"]
    assert [record.id for record in remaining] == ["f2"]
    assert hierarchy == tree.snapshot()


def test_empty_library_reads_as_empty(tmp_path: Path) -> None:
    backend = JsonBackend(tmp_path)

    async def scenario():
        return await backend.fetch_files(), await backend.fetch_hierarchy()

    assert asyncio.run(scenario()) == ([], None)


def test_corrupt_library_surfaces_as_backend_error(tmp_path: Path) -> None:
    backend = JsonBackend(tmp_path)
    backend.initialize()
    backend.path.write_text("{", encoding="utf-8")

    with pytest.raises(BackendUnavailableError):
        asyncio.run(backend.fetch_files())
