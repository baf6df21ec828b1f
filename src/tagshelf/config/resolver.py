"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import TagShelfConfig

ENV_PREFIX = "TAGSHELF__"


def resolve_with_precedence(
    *,
    defaults: TagShelfConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> TagShelfConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Keys in any override mapping may be nested mappings or dotted paths such as
    ``reconcile.preserve_identity``.

    Raises:
        ConfigError: If an override is malformed or the merged values fail validation.
    """
    merged = defaults.model_dump(mode="python")
    for name, source in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if source is None:
            continue
        merged = _deep_merge(merged, expand_dotted(source, source_name=name))

    try:
        return TagShelfConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: TagShelfConfig) -> Dict[str, str]:
    """Flatten the config into ``TAGSHELF__SECTION__KEY`` environment mappings."""
    flat: Dict[str, str] = {}

    def _recurse(prefix: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _recurse(prefix + [str(key)], child)
            return
        env_key = ENV_PREFIX + "__".join(part.upper() for part in prefix)
        if isinstance(value, list):
            flat[env_key] = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            flat[env_key] = "null" if value is None else str(value)

    for top_key, child_value in config.model_dump(mode="python").items():
        _recurse([str(top_key)], child_value)
    return flat


def expand_dotted(source: Mapping[str, Any], *, source_name: str = "file") -> dict[str, Any]:
    """Turn ``{"a.b": 1}`` style keys into nested mappings.

    Args:
        source: Override mapping whose keys may contain dots.
        source_name: Label used in error messages.

    Returns:
        dict[str, Any]: Nested mapping with plain section and field keys.

    Raises:
        ConfigError: If the mapping is malformed or two keys collide.
    """
    label = source_name.capitalize()
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{label} overrides must be a mapping.")

    nested: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str) or not key:
            raise ConfigError(f"{label} override keys must be non-empty strings.")
        *sections, field = key.split(".")
        node = nested
        for section in sections:
            node = node.setdefault(section, {})
            if not isinstance(node, dict):
                raise ConfigError(f"{label} override {key} conflicts with an existing value.")
        if isinstance(value, MappingABC):
            current = node.get(field)
            base = current if isinstance(current, MappingABC) else {}
            value = _deep_merge(base, expand_dotted(value, source_name=source_name))
        node[field] = value
    return nested


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``base`` with ``overrides`` applied section by section."""
    merged = deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            value = _deep_merge(current, value)
        merged[key] = deepcopy(value)
    return merged


__all__ = ["resolve_with_precedence", "flatten_for_env", "expand_dotted", "ENV_PREFIX"]
