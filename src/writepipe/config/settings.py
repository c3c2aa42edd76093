"""Settings for writepipe, merged from several sources.

Highest priority first:

1. keyword overrides passed to :meth:`WritepipeSettings.load`
2. ``WRITEPIPE_*`` environment variables (``__`` reaches nested sections)
3. ``writepipe.toml``, explicit or found by :func:`find_config`
4. defaults declared on the models below
"""

from __future__ import annotations

import threading
import tomllib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from writepipe.commands.options import ResultArity
from writepipe.config.discovery import find_config
from writepipe.errors import ConfigurationError

# TOML file for the settings object currently being built on this thread.
_loading = threading.local()


@contextmanager
def _toml_source_path(path: Path | None) -> Iterator[None]:
    _loading.path = path
    try:
        yield
    finally:
        _loading.path = None


def read_toml(path: Path) -> dict[str, Any]:
    """Parse *path*, raising :class:`ConfigurationError` on bad syntax."""
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigurationError(msg) from exc


class CommandDefaults(BaseModel):
    """``[commands]`` table: defaults used by :meth:`Gateway.command`."""

    model_config = {"frozen": True}

    result: ResultArity = ResultArity.MANY
    timestamps: bool = False


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by a single TOML document."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._document = read_toml(toml_path) if toml_path and toml_path.is_file() else {}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._document.get(field_name), field_name, field_name in self._document

    def __call__(self) -> dict[str, Any]:
        return dict(self._document)


class WritepipeSettings(BaseSettings):
    """Settings for gateways, logging and plugins.

    Attributes:
        database_url: SQLAlchemy URL used by :meth:`Gateway.from_settings`.
        echo: Echo SQL statements.
        verbose: Enable DEBUG logging for the ``writepipe`` logger.
        log_json: Render logs as JSON lines.
        plugins_dir: Directory scanned for single-file plugins.
        config_path: The TOML file the settings were loaded from, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "WRITEPIPE_",
        "env_nested_delimiter": "__",
    }

    database_url: str = "sqlite://"
    echo: bool = False
    verbose: bool = False
    log_json: bool = False
    plugins_dir: Path | None = None
    config_path: Path | None = None

    commands: CommandDefaults = Field(default_factory=CommandDefaults)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # dotenv and secrets directories are not consulted
        toml = TomlSettingsSource(settings_cls, getattr(_loading, "path", None))
        return init_settings, env_settings, toml

    @classmethod
    def load(
        cls,
        *,
        config_path: str | Path | None = None,
        start: Path | None = None,
        **overrides: Any,
    ) -> WritepipeSettings:
        """Build settings, looking for ``writepipe.toml`` upwards from *start*.

        Raises:
            ConfigurationError: *config_path* was given but is not a file, or
                the TOML document cannot be parsed.
        """
        if config_path is None:
            toml_path = find_config(start)
        else:
            toml_path = Path(config_path)
            if not toml_path.is_file():
                msg = f"Config file not found: {toml_path}"
                raise ConfigurationError(msg)

        with _toml_source_path(toml_path):
            return cls(config_path=toml_path, **overrides)
