"""Configuration management for tagshelf.

Settings live in a YAML file (``~/.tagshelf/config.yaml`` by default). The
effective configuration layers defaults, that file, ``TAGSHELF__SECTION__KEY``
environment variables, and command line overrides, in that order.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import TagShelfConfig
from .resolver import ENV_PREFIX, expand_dotted, flatten_for_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.tagshelf/config.yaml")
_HEADER = (
    "# tagshelf configuration file\n"
    "# Edit by hand or with `tagshelf config set KEY --value VALUE`.\n"
    "# Last updated: {stamp}\n"
)


class ConfigManager:
    """Read, resolve, and write the configuration file."""

    def __init__(self, config_path: Path | None = None) -> None:
        self._path = (config_path or DEFAULT_CONFIG_PATH).expanduser()

    @property
    def config_path(self) -> Path:
        return self._path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> TagShelfConfig:
        """Return the effective configuration, creating a default file first if needed.

        Args:
            cli_overrides: Dotted-key overrides supplied on the command line.
            include_env: Whether ``TAGSHELF__`` environment variables apply.
            env_overrides: Environment mapping used instead of ``os.environ``.

        Returns:
            TagShelfConfig: Validated configuration.

        Raises:
            ConfigError: If the file or any override is invalid.
        """
        self.ensure_exists()
        environ = None
        if include_env:
            environ = _from_environment(os.environ if env_overrides is None else env_overrides)
        return resolve_with_precedence(
            defaults=TagShelfConfig(),
            file_overrides=self.load_file_overrides(),
            env_overrides=environ or None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Parse the configuration file into a mapping; an absent file yields ``{}``."""
        text = self.read_text()
        try:
            data = yaml.safe_load(text) if text else None
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return data

    def read_text(self) -> str:
        return self._path.read_text(encoding="utf-8") if self._path.exists() else ""

    def ensure_exists(self) -> Path:
        """Write the default configuration unless a file is already present."""
        if not self._path.exists():
            self.save(TagShelfConfig())
        return self._path

    def save(self, config: TagShelfConfig | Mapping[str, Any]) -> None:
        """Replace the file with ``config``, stamped with the current time."""
        if isinstance(config, TagShelfConfig):
            data: dict[str, Any] = config.model_dump(mode="python")
        else:
            data = dict(config)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            _HEADER.format(stamp=stamp) + yaml.safe_dump(data, sort_keys=False),
            encoding="utf-8",
        )


def _from_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    """Turn ``TAGSHELF__SECTION__KEY`` variables into nested overrides.

    Values are parsed as YAML so ``true`` and ``8`` arrive typed; anything YAML
    rejects is kept as the raw string.
    """
    dotted: dict[str, Any] = {}
    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            dotted[".".join(segments)] = yaml.safe_load(raw)
        except yaml.YAMLError:
            dotted[".".join(segments)] = raw
    return expand_dotted(dotted, source_name="environment")


__all__ = [
    "ConfigManager",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "TagShelfConfig",
    "flatten_for_env",
    "resolve_with_precedence",
]
