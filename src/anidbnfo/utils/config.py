"""Config utility for persistent anidbnfo settings.

Reads and writes ~/.config/anidbnfo/config.toml (respecting XDG_CONFIG_HOME)
with tomli/tomli-w and validates it into :class:`ExporterConfig`. Credentials
found in the environment (see :mod:`anidbnfo.metadata.settings`) override the
file.
"""

import contextlib
import os
from pathlib import Path
from typing import Any, TypeVar, cast

import tomli
import tomli_w
from pydantic import BaseModel, Field, ValidationError

from anidbnfo.errors import ParseFailure
from anidbnfo.metadata.settings import Settings

# Determine config directory respecting XDG_CONFIG_HOME if set.
_xdg_config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
_xdg_cache_home = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
CONFIG_DIR = _xdg_config_home / "anidbnfo"
CONFIG_FILE = CONFIG_DIR / "config.toml"


class AniDBClientConfig(BaseModel):
    """Registered AniDB HTTP client."""

    name: str | None = None
    version: int | None = None


class AniDBConfig(BaseModel):
    """AniDB HTTP API settings."""

    url: str = "http://api.anidb.net:9001/httpapi"
    client: AniDBClientConfig = Field(default_factory=AniDBClientConfig)
    poster: bool = False


class AniListConfig(BaseModel):
    """AniList settings; the resolver is disabled without a token."""

    token: str | None = None


class TMDBConfig(BaseModel):
    """TMDB settings; the resolver is disabled without an API key."""

    api_key: str | None = None


class CacheConfig(BaseModel):
    """Cache root and time-to-live (days) per dataset."""

    path: Path = _xdg_cache_home / "anidbnfo"
    anidb_age: int = 90
    mapping_age: int = 7


class MatchingConfig(BaseModel):
    """Fuzzy matching policy."""

    threshold: int = 5
    native_multiplier: float = 1.5
    romanized_multiplier: float = 4.0


class ExporterConfig(BaseModel):
    """Complete anidbnfo configuration."""

    anidb: AniDBConfig = Field(default_factory=AniDBConfig)
    anilist: AniListConfig = Field(default_factory=AniListConfig)
    tmdb: TMDBConfig = Field(default_factory=TMDBConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    overwrite_nfo: bool = False


def _read_config_file() -> dict[str, Any]:
    """Read the TOML config file if it exists, returning a (nested) dict."""

    if not CONFIG_FILE.exists():
        return {}
    with CONFIG_FILE.open("rb") as f:
        return tomli.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *override* merged in, recursing into nested tables."""

    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_settings(config: ExporterConfig, settings: Settings) -> ExporterConfig:
    """Overlay credentials from the environment onto *config*."""

    if settings.ANIDB_CLIENT:
        config.anidb.client.name = settings.ANIDB_CLIENT
    if settings.ANIDB_CLIENT_VERSION is not None:
        config.anidb.client.version = settings.ANIDB_CLIENT_VERSION
    if settings.ANILIST_TOKEN:
        config.anilist.token = settings.ANILIST_TOKEN
    if settings.TMDB_API_KEY:
        config.tmdb.api_key = settings.TMDB_API_KEY
    return config


def read_config(settings: Settings | None = None) -> ExporterConfig:
    """Load the config file merged onto the defaults.

    Args:
        settings: Environment credentials; read from the environment if omitted.

    Returns:
        The validated configuration.

    Raises:
        ParseFailure: If the config file contains invalid values.
    """
    defaults = ExporterConfig().model_dump(mode="json")
    data = _deep_merge(defaults, _read_config_file())
    try:
        config = ExporterConfig.model_validate(data)
    except ValidationError as exc:
        raise ParseFailure(str(CONFIG_FILE), str(exc)) from exc
    return _apply_settings(config, settings or Settings())


def write_config(config: ExporterConfig) -> None:
    """Write *config* to config.toml, readable by the owner only.

    Unset values are left out since TOML has no null.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True, mode=0o750)
    data = config.model_dump(mode="json", exclude_none=True)
    with CONFIG_FILE.open("wb") as f:
        tomli_w.dump(data, f)
    CONFIG_FILE.chmod(0o600)


# ---------------------------------------------------------------------------
# Generic configuration resolution
# ---------------------------------------------------------------------------

T = TypeVar("T")


def _lookup_nested(data: dict[str, Any], dotted_key: str) -> Any | None:
    """Retrieve a nested value from *data* given a dotted key path.

    Example: dotted_key="matching.threshold" will attempt
    ``data["matching"]["threshold"]`` returning None if any level is missing.
    """

    keys = dotted_key.split(".")
    current: Any = data
    for part in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _make_env_var_name(dotted_key: str, prefix: str = "ANIDBNFO_") -> str:
    """Convert a dotted key path to an uppercase ENV var name.

    Example: "cache.anidb_age" -> "ANIDBNFO_CACHE_ANIDB_AGE".
    """

    return prefix + dotted_key.replace(".", "_").upper()


def _coerce(value: Any, default: T) -> T:
    """Best-effort coercion of *value* to the type of *default*."""

    if isinstance(default, bool):
        if isinstance(value, bool):
            return cast(T, value)
        if isinstance(value, str):
            return cast(T, value.lower() in {"1", "true", "yes", "on"})
        return default
    if isinstance(default, int):
        if isinstance(value, int):
            return cast(T, value)
        with contextlib.suppress(ValueError, TypeError):
            return cast(T, int(value))
        return default
    if isinstance(default, float):
        with contextlib.suppress(ValueError, TypeError):
            return cast(T, float(value))
        return default
    return cast(T, value)


def resolve_setting(
    key: str,
    *,
    default: T,
    cli_value: T | None = None,
) -> T:
    """Resolve a configuration *key* using precedence CLI > env > config > default.

    Args:
        key: Dotted key path, e.g. ``"matching.threshold"``.
        default: Value to fall back to when no overrides found.
        cli_value: Value passed from a CLI option (``None`` when not provided).

    Returns:
        The resolved value with type matching *default* (or *cli_value*).
    """

    if cli_value is not None:
        return cli_value

    env_var = _make_env_var_name(key)
    if env_var in os.environ:
        return _coerce(os.environ[env_var], default)

    file_val = _lookup_nested(_read_config_file(), key)
    if file_val is not None:
        return _coerce(file_val, default)

    return default
