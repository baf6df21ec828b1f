"""File store reconciliation tests."""

from __future__ import annotations

import asyncio
import os

import pytest

from tagshelf.config.models import ReconcileSettings
from tagshelf.errors import BackendUnavailableError, StaleFileError
from tagshelf.files import FileStore
from tagshelf.selection import Selection


def test_init_populates_and_prunes_missing_paths(backend, make_record) -> None:
    first = make_record("a.txt")
    missing = make_record("b.txt", exists=False)
    last = make_record("c.txt")
    backend.records = {record.id: record for record in (first, missing, last)}
    store = FileStore(backend)

    async def scenario():
        result = await store.init()
        await store.drain()
        return result

    result = asyncio.run(scenario())

    assert result.mode == "populate"
    assert result.kept == [first.id, last.id]
    assert [stale.file_id for stale in result.stale] == [missing.id]
    assert isinstance(result.stale[0], StaleFileError)
    assert missing.path in str(result.stale[0])
    assert [client.id for client in store.files] == [first.id, last.id]
    assert backend.arguments("remove_file") == [missing.id]
    assert missing.id not in backend.records


def test_refetch_drops_file_deleted_on_disk(backend, make_record) -> None:
    records = [make_record(name) for name in ("a.txt", "b.txt", "c.txt")]
    backend.records = {record.id: record for record in records}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        os.remove(records[1].path)
        result = await store.fetch_all_files()
        await store.drain()
        return result

    result = asyncio.run(scenario())

    assert result.mode == "replace"
    assert [client.id for client in store.files] == [records[0].id, records[2].id]
    assert backend.arguments("remove_file") == [records[1].id]


def test_all_stale_files_are_pruned_before_the_branch(backend, make_record) -> None:
    records = [make_record(name) for name in ("a.txt", "b.txt")]
    backend.records = {record.id: record for record in records}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        held = store.files
        for record in records:
            os.remove(record.path)
        result = await store.fetch_all_files()
        await store.drain()
        return held, result

    held, result = asyncio.run(scenario())

    assert result.mode == "populate"
    assert [stale.file_id for stale in result.stale] == [record.id for record in records]
    assert store.files == ()
    assert all(client.disposed for client in held)
    assert backend.records == {}


def test_empty_backend_result_clears_and_disposes(backend, make_record) -> None:
    records = [make_record(name) for name in ("a.txt", "b.txt")]
    backend.records = {record.id: record for record in records}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        held = store.files
        backend.records = {}
        result = await store.fetch_all_files()
        await store.drain()
        return held, result

    held, result = asyncio.run(scenario())

    assert result.mode == "clear"
    assert result.stale == []
    assert store.files == ()
    assert len(held) == 2
    assert all(client.disposed for client in held)
    assert backend.arguments("remove_file") == []


def test_replace_rebuilds_file_objects(backend, make_record) -> None:
    record = make_record("a.txt")
    backend.records = {record.id: record}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        before = store.get(record.id)
        await store.fetch_all_files()
        return before, store.get(record.id)

    before, after = asyncio.run(scenario())

    assert before is not after
    assert before.disposed
    assert not after.disposed


def test_merge_preserves_identity_and_updates_tags(backend, make_record) -> None:
    kept = make_record("a.txt")
    dropped = make_record("b.txt")
    backend.records = {kept.id: kept, dropped.id: dropped}
    store = FileStore(backend, settings=ReconcileSettings(preserve_identity=True))

    async def scenario():
        await store.init()
        before = store.get(kept.id)
        other = store.get(dropped.id)
        backend.records = {kept.id: kept.model_copy(update={"tag_ids": ["t1"]})}
        result = await store.fetch_all_files()
        await store.drain()
        return before, other, result

    before, other, result = asyncio.run(scenario())

    assert result.mode == "merge"
    assert store.get(kept.id) is before
    assert list(before.tag_ids) == ["t1"]
    assert other.disposed
    assert backend.arguments("save_file") == []


def test_duplicate_records_are_collapsed(backend, make_record) -> None:
    record = make_record("a.txt")
    store = FileStore(backend)

    result = asyncio.run(store.reconcile([record, record]))

    assert result.kept == [record.id]


def test_older_fetch_is_discarded(backend, make_record) -> None:
    slow = make_record("slow.txt", tag_ids=["old"])
    fast = make_record("fast.txt", tag_ids=["new"])
    backend.records = {slow.id: slow, fast.id: fast}
    backend.delay = lambda operation, argument: 0.05 if argument == ("old",) else 0
    store = FileStore(backend)

    async def scenario():
        return await asyncio.gather(
            store.fetch_files_by_tag_ids(["old"]),
            store.fetch_files_by_tag_ids(["new"]),
        )

    older, newer = asyncio.run(scenario())

    assert older.discarded
    assert newer.mode == "populate"
    assert [client.id for client in store.files] == [fast.id]


def test_empty_tag_search_fetches_everything(backend, make_record) -> None:
    record = make_record("a.txt")
    backend.records = {record.id: record}
    store = FileStore(backend)

    asyncio.run(store.fetch_files_by_tag_ids([]))

    assert backend.arguments("search_files") == []
    assert [name for name, _ in backend.calls] == ["fetch_files"]


def test_read_failure_leaves_list_unchanged(backend, make_record) -> None:
    record = make_record("a.txt")
    backend.records = {record.id: record}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        backend.failing.update({"fetch_files", "search_files"})
        return await store.fetch_all_files(), await store.fetch_files_by_tag_ids(["x"])

    results = asyncio.run(scenario())

    assert results == (None, None)
    assert [client.id for client in store.files] == [record.id]


def test_add_file_appends_after_backend_accepts(backend, tmp_path) -> None:
    store = FileStore(backend)
    path = tmp_path / "new.txt"
    path.write_text("new", encoding="utf-8")

    client = asyncio.run(store.add_file(path))

    assert store.files == (client,)
    assert backend.records[client.id].path == str(path)


def test_add_file_failure_propagates(backend, tmp_path) -> None:
    backend.failing.add("create_file")
    store = FileStore(backend)

    with pytest.raises(BackendUnavailableError):
        asyncio.run(store.add_file(tmp_path / "new.txt"))

    assert store.files == ()


def test_remove_files_runs_sequentially_in_order(backend, make_record) -> None:
    records = [make_record(name) for name in ("a.txt", "b.txt", "c.txt")]
    backend.records = {record.id: record for record in records}
    selection = Selection()
    store = FileStore(backend, selection=selection)

    async def scenario():
        await store.init()
        for record in records:
            selection.select_file(record.id)
        return await store.remove_files_by_id(
            [records[2].id, "unknown", records[0].id, records[2].id]
        )

    removed = asyncio.run(scenario())

    assert removed == [records[2].id, records[0].id]
    assert backend.arguments("remove_file") == [records[2].id, records[0].id]
    assert [client.id for client in store.files] == [records[1].id]
    assert selection.file_ids == frozenset({records[1].id})


def test_remove_failure_stops_processing(backend, make_record) -> None:
    records = [make_record(name) for name in ("a.txt", "b.txt")]
    backend.records = {record.id: record for record in records}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        backend.failing.add("remove_file")
        await store.remove_files_by_id([record.id for record in records])

    with pytest.raises(BackendUnavailableError):
        asyncio.run(scenario())

    assert backend.arguments("remove_file") == [records[0].id]
    assert [client.id for client in store.files] == [records[1].id]


def test_tag_edits_are_saved_until_disposed(backend, make_record) -> None:
    record = make_record("a.txt")
    backend.records = {record.id: record}
    store = FileStore(backend)

    async def scenario():
        await store.init()
        client = store.get(record.id)
        client.add_tag("t1")
        await store.drain()
        await store.dispose()
        client.add_tag("t2")
        await store.drain()

    asyncio.run(scenario())

    assert backend.arguments("save_file") == [record.id]
    assert backend.records[record.id].tag_ids == ["t1"]
