"""CLI tests for the tagshelf entrypoint."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from tagshelf.cli import cli
from tagshelf.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, str]:
    """Return environment variables pointing HOME to a temp directory."""

    env = dict(os.environ)
    env["HOME"] = str(tmp_path / "home")
    return env


def _invoke_json(runner: CliRunner, env: dict[str, str], *args: str) -> Any:
    result = runner.invoke(cli, ["--json", *args], env=env)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Manage tags, tag collections, and tagged files." in result.output
    for command in ("files", "tree", "collection", "tag", "config"):
        assert command in result.output


def test_cli_builds_and_persists_hierarchy(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    work = _invoke_json(runner, env, "collection", "add", "work")
    urgent = _invoke_json(runner, env, "tag", "add", "urgent", "--parent", work["id"])
    snapshot = _invoke_json(runner, env, "tree")

    collections = {entry["id"]: entry for entry in snapshot["collections"]}
    assert collections[work["id"]]["tag_ids"] == [urgent["id"]]
    assert work["id"] in collections["root"]["sub_collection_ids"]
    assert (tmp_path / "home" / ".tagshelf" / "library.json").exists()

    rendered = runner.invoke(cli, ["tree"], env=env)
    assert rendered.exit_code == 0
    assert "work" in rendered.output
    assert "1 hidden" in rendered.output

    expanded = runner.invoke(cli, ["tree", "--expand-all"], env=env)
    assert "urgent" in expanded.output


def test_cli_rejects_cycles(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    outer = _invoke_json(runner, env, "collection", "add", "outer")
    inner = _invoke_json(runner, env, "collection", "add", "inner", "--parent", outer["id"])

    result = runner.invoke(cli, ["--json", "collection", "move", outer["id"], inner["id"]], env=env)

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["error"]["code"] == "cycle_detected"


def test_cli_file_workflow(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "alpha.txt").write_text("alpha", encoding="utf-8")
    (docs / "beta.txt").write_text("beta", encoding="utf-8")

    tag = _invoke_json(runner, env, "tag", "add", "draft")
    paths = [str(docs / "alpha.txt"), str(docs / "beta.txt")]
    added = _invoke_json(runner, env, "files", "add", *paths)
    alpha_id, beta_id = [entry["id"] for entry in added["added"]]

    tagged = _invoke_json(runner, env, "files", "tag", alpha_id, tag["id"])
    assert tagged["tags"] == ["draft"]

    everything = _invoke_json(runner, env, "files", "list")
    assert [entry["id"] for entry in everything["files"]] == [alpha_id, beta_id]

    filtered = _invoke_json(runner, env, "files", "list", "--tag", tag["id"])
    assert filtered["selection"] == [tag["id"]]
    assert [entry["id"] for entry in filtered["files"]] == [alpha_id]

    removed = _invoke_json(runner, env, "files", "remove", beta_id)
    assert removed["removed"] == [beta_id]

    remaining = _invoke_json(runner, env, "files", "list")
    assert [entry["id"] for entry in remaining["files"]] == [alpha_id]


def test_cli_prune_reports_missing_files(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    target = tmp_path / "gone.txt"
    target.write_text("gone", encoding="utf-8")

    added = _invoke_json(runner, env, "files", "add", str(target))
    file_id = added["added"][0]["id"]
    target.unlink()

    pruned = _invoke_json(runner, env, "files", "prune")

    assert pruned["files"] == []
    assert [entry["id"] for entry in pruned["stale"]] == [file_id]
    assert _invoke_json(runner, env, "files", "list")["files"] == []


def test_cli_unknown_collection_fails(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["collection", "rename", "missing", "x"], env=env)

    assert result.exit_code == 1
    assert "Unknown collection: missing" in result.output


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "reconcile:" in result.output


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "reconcile.max_concurrent_checks", "--value", "12"], env=env
    )

    assert result.exit_code == 0
    assert "12" in result.output

    manager = ConfigManager(config_path=tmp_path / "home" / ".tagshelf" / "config.yaml")
    config = manager.load(include_env=False)
    assert config.reconcile.max_concurrent_checks == 12

    repeat = runner.invoke(
        cli, ["config", "set", "reconcile.max_concurrent_checks", "--value", "12"], env=env
    )
    assert "No changes applied" in repeat.output


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "reconcile.max_concurrent_checks", "--value", "0"], env=env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output
