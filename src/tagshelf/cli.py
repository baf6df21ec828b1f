"""Command line interface for tagshelf."""

from __future__ import annotations

import asyncio
import difflib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, TypeVar

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from tagshelf.config import ConfigError, ConfigManager, TagShelfConfig, resolve_with_precedence
from tagshelf.errors import (
    BackendUnavailableError,
    CycleDetectedError,
    InvalidOperationError,
    NotFoundError,
)
from tagshelf.files import ClientFile, ReconcileResult
from tagshelf.log_setup import configure_logging
from tagshelf.store import RootStore

console = Console()

T = TypeVar("T")


@dataclass(slots=True)
class CLIState:
    """Options shared by every subcommand."""

    config: TagShelfConfig
    json_output: bool
    quiet: bool


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For human-readable output.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    raise click.ClickException(message) from original


def _emit(state: CLIState, message: Any) -> None:
    if not state.quiet:
        console.print(message)


def _run(
    state: CLIState,
    action: Callable[[RootStore], Awaitable[T]],
    *,
    load_files: bool = True,
) -> T:
    """Run ``action`` against an initialized store and dispose it afterwards."""

    async def _main() -> T:
        store = RootStore.from_config(state.config)
        await store.init(load_files=load_files)
        try:
            return await action(store)
        finally:
            await store.dispose()

    try:
        return asyncio.run(_main())
    except (NotFoundError, InvalidOperationError, BackendUnavailableError) as exc:
        _handle_cli_error(
            str(exc), code=_error_code(exc), json_output=state.json_output, original=exc
        )


def _error_code(exc: Exception) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, CycleDetectedError):
        return "cycle_detected"
    if isinstance(exc, InvalidOperationError):
        return "invalid_operation"
    return "backend_unavailable"


def _require(value: T | None, message: str) -> T:
    if value is None:
        raise NotFoundError(message)
    return value


def _require_tag(store: RootStore, tag_id: str) -> None:
    if not store.tree.has_tag(tag_id):
        raise NotFoundError(f"Unknown tag: {tag_id}")


def _file_payload(store: RootStore, client: ClientFile) -> dict[str, Any]:
    return {
        "id": client.id,
        "path": client.path,
        "tags": [_tag_label(store, tag_id) for tag_id in client.tag_ids],
    }


def _tag_label(store: RootStore, tag_id: str) -> str:
    if store.tree.has_tag(tag_id):
        return store.tree.get_tag(tag_id).name
    return tag_id


def _print_files(state: CLIState, store: RootStore, result: ReconcileResult | None = None) -> None:
    payloads = [_file_payload(store, client) for client in store.files.files]
    if state.json_output:
        data: dict[str, Any] = {"selection": store.selection.tag_ids(), "files": payloads}
        if result is not None:
            data["stale"] = [{"id": stale.file_id, "path": stale.path} for stale in result.stale]
        console.print_json(data=data)
        return
    table = Table(title=f"{len(payloads)} file(s)")
    table.add_column("ID", style="dim")
    table.add_column("Path")
    table.add_column("Tags", style="cyan")
    for payload in payloads:
        table.add_row(payload["id"], payload["path"], ", ".join(payload["tags"]))
    _emit(state, table)
    if result is not None and result.stale:
        _emit(state, f"[yellow]Pruned {len(result.stale)} missing file(s).[/yellow]")


def _render_tree(store: RootStore) -> Tree:
    tree = store.tree

    def _branch(node: Tree, collection_id: str) -> None:
        collection = tree.get_collection(collection_id)
        marker = "*" if store.aggregator.is_collection_selected(collection_id) else ""
        label = f"[bold]{collection.name}[/bold]{marker} [dim]{collection.id}[/dim]"
        child = node.add(label)
        if not store.expand.is_expanded(collection_id):
            hidden = len(collection.sub_collection_ids) + len(collection.tag_ids)
            if hidden:
                child.add(f"[dim]({hidden} hidden)[/dim]")
            return
        for sub_id in collection.sub_collection_ids:
            _branch(child, sub_id)
        for tag_id in collection.tag_ids:
            tag = tree.get_tag(tag_id)
            selected = "*" if store.selection.is_tag_selected(tag_id) else ""
            child.add(f"[cyan]{tag.name}[/cyan]{selected} [dim]{tag.id}[/dim]")

    rendered = Tree("Tags")
    _branch(rendered, tree.root_id)
    return rendered


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="tagshelf")
@click.option(
    "--library",
    type=click.Path(file_okay=False, path_type=str),
    help="Directory holding the library document (overrides library.location).",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of tables.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to the terminal.")
@click.pass_context
def cli(
    ctx: click.Context,
    library: str | None,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Manage tags, tag collections, and tagged files."""
    if ctx.invoked_subcommand == "config":
        return
    overrides = {"library.location": library} if library else None
    try:
        config = ConfigManager().load(cli_overrides=overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(config.logging, Path(config.library.location).expanduser(), verbose=verbose)
    ctx.obj = CLIState(
        config=config,
        json_output=json_output or config.cli.json_default,
        quiet=quiet or config.cli.quiet_default,
    )


# ---------------------------------------------------------------------- #
# Files                                                                  #
# ---------------------------------------------------------------------- #


@cli.group()
def files() -> None:
    """Inspect and modify the tracked file list."""


@files.command("list")
@click.option(
    "--tag", "tag_ids", multiple=True, help="Filter by tag id (repeatable, OR semantics)."
)
@click.option(
    "--collection", "collection_ids", multiple=True, help="Filter by every tag under a collection."
)
@click.pass_obj
def files_list(state: CLIState, tag_ids: tuple[str, ...], collection_ids: tuple[str, ...]) -> None:
    """List files, optionally filtered by tags or collections."""

    async def _action(store: RootStore) -> None:
        for tag_id in tag_ids:
            _require_tag(store, tag_id)
            await store.toggle_tag(tag_id)
        for collection_id in collection_ids:
            selected = await store.toggle_collection(collection_id)
            _require(selected, f"Unknown collection: {collection_id}")
        _print_files(state, store)

    _run(state, _action)


@files.command("add")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.pass_obj
def files_add(state: CLIState, paths: tuple[Path, ...]) -> None:
    """Track one or more files."""

    async def _action(store: RootStore) -> list[ClientFile]:
        return [await store.add_file(path.resolve()) for path in paths]

    added = _run(state, _action)
    if state.json_output:
        console.print_json(data={"added": [{"id": f.id, "path": f.path} for f in added]})
        return
    for client in added:
        _emit(state, f"[green]Added {client.path}[/green] [dim]{client.id}[/dim]")


@files.command("remove")
@click.argument("file_ids", nargs=-1, required=True)
@click.pass_obj
def files_remove(state: CLIState, file_ids: tuple[str, ...]) -> None:
    """Stop tracking files, in the order given."""

    async def _action(store: RootStore) -> list[str]:
        return await store.remove_files(file_ids)

    removed = _run(state, _action)
    if state.json_output:
        console.print_json(data={"removed": removed})
        return
    _emit(state, f"[green]Removed {len(removed)} of {len(file_ids)} file(s).[/green]")


@files.command("prune")
@click.pass_obj
def files_prune(state: CLIState) -> None:
    """Reconcile the library against the filesystem and drop missing files."""

    async def _action(store: RootStore) -> None:
        result = await store.files.fetch_all_files()
        _print_files(state, store, result)

    _run(state, _action, load_files=False)


@files.command("tag")
@click.argument("file_id")
@click.argument("tag_ids", nargs=-1, required=True)
@click.option("--remove", is_flag=True, help="Remove the tags instead of adding them.")
@click.pass_obj
def files_tag(state: CLIState, file_id: str, tag_ids: tuple[str, ...], remove: bool) -> None:
    """Add tags to (or remove tags from) a file."""

    async def _action(store: RootStore) -> dict[str, Any]:
        client = _require(store.files.get(file_id), f"Unknown file: {file_id}")
        for tag_id in tag_ids:
            if remove:
                client.remove_tag(tag_id)
            else:
                _require_tag(store, tag_id)
                client.add_tag(tag_id)
        return _file_payload(store, client)

    payload = _run(state, _action)
    if state.json_output:
        console.print_json(data=payload)
        return
    _emit(state, f"[green]{payload['path']}[/green]: {', '.join(payload['tags']) or '(no tags)'}")


# ---------------------------------------------------------------------- #
# Hierarchy                                                              #
# ---------------------------------------------------------------------- #


@cli.command("tree")
@click.option("--expand-all", is_flag=True, help="Expand every collection.")
@click.pass_obj
def tree_command(state: CLIState, expand_all: bool) -> None:
    """Show the tag hierarchy."""

    async def _action(store: RootStore) -> None:
        if expand_all:
            store.expand_all()
        if state.json_output:
            console.print_json(data=store.tree.snapshot().model_dump(mode="json"))
            return
        _emit(state, _render_tree(store))

    _run(state, _action, load_files=False)


@cli.group()
def collection() -> None:
    """Create, remove, move, and rename tag collections."""


@collection.command("add")
@click.argument("name")
@click.option("--parent", "parent_id", help="Parent collection id (defaults to the root).")
@click.pass_obj
def collection_add(state: CLIState, name: str, parent_id: str | None) -> None:
    """Create a collection."""

    async def _action(store: RootStore) -> str:
        created = _require(
            store.add_collection(name, parent_id), f"Unknown collection: {parent_id}"
        )
        return created.id

    created_id = _run(state, _action, load_files=False)
    if state.json_output:
        console.print_json(data={"id": created_id, "name": name})
        return
    _emit(state, f"[green]Created collection {name}[/green] [dim]{created_id}[/dim]")


@collection.command("remove")
@click.argument("collection_id")
@click.pass_obj
def collection_remove(state: CLIState, collection_id: str) -> None:
    """Remove a collection together with its sub-collections and tags."""

    async def _action(store: RootStore) -> dict[str, Any]:
        removed = _require(
            store.remove_collection(collection_id), f"Unknown collection: {collection_id}"
        )
        return {"collections": list(removed.collection_ids), "tags": list(removed.tag_ids)}

    payload = _run(state, _action)
    if state.json_output:
        console.print_json(data={"removed": payload})
        return
    _emit(
        state,
        f"[green]Removed {len(payload['collections'])} collection(s) "
        f"and {len(payload['tags'])} tag(s).[/green]",
    )


@collection.command("move")
@click.argument("collection_id")
@click.argument("parent_id")
@click.pass_obj
def collection_move(state: CLIState, collection_id: str, parent_id: str) -> None:
    """Move a collection under another collection."""

    async def _action(store: RootStore) -> None:
        if not store.move_collection(collection_id, parent_id):
            raise NotFoundError(f"Could not move {collection_id} to {parent_id}.")

    _run(state, _action, load_files=False)
    _emit(state, f"[green]Moved {collection_id} under {parent_id}.[/green]")


@collection.command("rename")
@click.argument("collection_id")
@click.argument("name")
@click.pass_obj
def collection_rename(state: CLIState, collection_id: str, name: str) -> None:
    """Rename a collection."""

    async def _action(store: RootStore) -> None:
        if not store.rename_collection(collection_id, name):
            raise NotFoundError(f"Unknown collection: {collection_id}")

    _run(state, _action, load_files=False)
    _emit(state, f"[green]Renamed {collection_id} to {name}.[/green]")


@cli.group()
def tag() -> None:
    """Create, remove, move, and rename tags."""


@tag.command("add")
@click.argument("name")
@click.option("--parent", "parent_id", help="Collection id (defaults to the root).")
@click.pass_obj
def tag_add(state: CLIState, name: str, parent_id: str | None) -> None:
    """Create a tag."""

    async def _action(store: RootStore) -> str:
        created = _require(store.add_tag(name, parent_id), f"Unknown collection: {parent_id}")
        return created.id

    created_id = _run(state, _action, load_files=False)
    if state.json_output:
        console.print_json(data={"id": created_id, "name": name})
        return
    _emit(state, f"[green]Created tag {name}[/green] [dim]{created_id}[/dim]")


@tag.command("remove")
@click.argument("tag_id")
@click.pass_obj
def tag_remove(state: CLIState, tag_id: str) -> None:
    """Remove a tag and strip it from loaded files."""

    async def _action(store: RootStore) -> str:
        return _require(store.remove_tag(tag_id), f"Unknown tag: {tag_id}").name

    name = _run(state, _action)
    _emit(state, f"[green]Removed tag {name}.[/green]")


@tag.command("move")
@click.argument("tag_id")
@click.argument("parent_id")
@click.option(
    "--index", type=int, help="Position within the target collection (appends by default)."
)
@click.pass_obj
def tag_move(state: CLIState, tag_id: str, parent_id: str, index: int | None) -> None:
    """Move a tag into a collection."""

    async def _action(store: RootStore) -> int:
        return _require(store.move_tag(tag_id, parent_id, index), f"Could not move tag {tag_id}.")

    position = _run(state, _action, load_files=False)
    _emit(state, f"[green]Moved {tag_id} to position {position} of {parent_id}.[/green]")


@tag.command("rename")
@click.argument("tag_id")
@click.argument("name")
@click.pass_obj
def tag_rename(state: CLIState, tag_id: str, name: str) -> None:
    """Rename a tag."""

    async def _action(store: RootStore) -> None:
        if not store.rename_tag(tag_id, name):
            raise NotFoundError(f"Unknown tag: {tag_id}")

    _run(state, _action, load_files=False)
    _emit(state, f"[green]Renamed {tag_id} to {name}.[/green]")


# ---------------------------------------------------------------------- #
# Configuration                                                          #
# ---------------------------------------------------------------------- #


@cli.group()
def config() -> None:
    """Manage tagshelf configuration files and overrides."""


def _config_diff(before: list[str], after: list[str]) -> list[str]:
    """Return a unified diff, or an empty list when only the timestamp changed."""
    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    body = [
        line for line in diff[2:] if line.startswith(("+", "-")) and "# Last updated" not in line
    ]
    return diff if body else []


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException(
            "KEY must specify a dotted path such as 'reconcile.preserve_identity'."
        )

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    file_data = manager.load_file_overrides()
    try:
        merged = resolve_with_precedence(
            defaults=TagShelfConfig(),
            file_overrides=file_data,
            cli_overrides={".".join(segments): parsed_value},
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(merged)
    diff = _config_diff(before, manager.read_text().splitlines())
    if not diff:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


__all__ = ["cli"]
