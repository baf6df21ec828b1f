"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from tagshelf.config import (
    ConfigError,
    ConfigManager,
    TagShelfConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".tagshelf" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "tagshelf configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, TagShelfConfig)


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"hierarchy": {"root_name": "Library"}, "reconcile": {"max_concurrent_checks": 8}})

    env = {"TAGSHELF__RECONCILE__MAX_CONCURRENT_CHECKS": "16", "TAGSHELF__LOGGING__LEVEL": "INFO"}
    cli = {"reconcile.max_concurrent_checks": 4}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.hierarchy.root_name == "Library"
    assert config.logging.level == "INFO"
    # CLI overrides take precedence over environment
    assert config.reconcile.max_concurrent_checks == 4


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(TagShelfConfig())

    assert flat["TAGSHELF__LIBRARY__FILENAME"] == "library.json"
    assert flat["TAGSHELF__RECONCILE__MAX_CONCURRENT_CHECKS"] == "64"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=TagShelfConfig(),
            file_overrides={"reconcile": {"max_concurrent_checks": 0}},
        )


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=TagShelfConfig(),
            file_overrides={"library": {"colour": "blue"}},
        )


def test_process_environment_applies_unless_disabled(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    monkeypatch.setenv("TAGSHELF__RECONCILE__PRESERVE_IDENTITY", "true")

    assert manager.load().reconcile.preserve_identity is True
    assert manager.load(include_env=False).reconcile.preserve_identity is False
