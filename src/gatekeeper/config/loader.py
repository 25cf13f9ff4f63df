"""
gatekeeper — runtime config loader.

File: src/gatekeeper/config/loader.py

Purpose
- Build the effective configuration from defaults, ``gatekeeper.toml``,
  ``GATEKEEPER_*`` environment variables and CLI overrides, in that order of
  increasing precedence.

Behavior
- Only scalar settings are reachable from the environment; the variable name is
  the upper-cased dotted path, e.g. ``automation.auto_push`` is
  ``GATEKEEPER_AUTOMATION_AUTO_PUSH``. Values are coerced to the type of the
  setting they replace.
- ``[paths]`` entries are made absolute against the config file's directory.
- The merged mapping is validated before it is returned.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from gatekeeper.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "gatekeeper.toml"
ENV_PREFIX: Final[str] = "GATEKEEPER_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ConfigPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """The config file cannot be read or parsed, or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    repo_root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    Without an explicit ``config_path`` the loader looks for ``gatekeeper.toml`` in
    ``repo_root`` (or the working directory) and falls back to defaults when it is absent.
    """

    root = Path(repo_root).expanduser().resolve() if repo_root is not None else Path.cwd()
    if config_path is None:
        source = (root / DEFAULT_CONFIG_FILE).resolve()
        file_layer = _read_toml(source) if source.exists() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.exists():
            raise ConfigLoadError(f"config file not found: {source}")
        file_layer = _read_toml(source)

    config = assert_valid_config(merge_config(default_config(), file_layer))
    env_layer = _environment_layer(config, os.environ if environ is None else environ)
    cli_layer = _cli_layer(cli_overrides or {})
    config = assert_valid_config(merge_config(merge_config(config, env_layer), cli_layer))
    return normalize_paths(config, base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with every ``[paths]`` entry absolute."""

    normalized = merge_config({}, config)
    for path in PATH_FIELDS:
        raw = _lookup(normalized, path)
        if isinstance(raw, str):
            _assign(normalized, path, _absolute_posix(raw, base_dir))
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Render the effective config as sorted, indented JSON."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _environment_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in _scalar_settings(config):
        name = ENV_PREFIX + "_".join(part.upper() for part in path)
        raw = environ.get(name)
        if raw is None:
            continue
        coerce = _COERCERS[type(current)]
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} {exc}") from exc
        _assign(layer, path, value)
    return layer


def _scalar_settings(
    payload: Mapping[str, object], prefix: ConfigPath = ()
) -> Iterator[tuple[ConfigPath, object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _scalar_settings(value, (*prefix, key))
        elif type(value) in _COERCERS:
            yield (*prefix, key), value


def _as_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _as_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _as_float(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


_COERCERS: Final[dict[type, Callable[[str], object]]] = {
    bool: _as_bool,
    int: _as_int,
    float: _as_float,
    str: str,
}


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted in sorted(overrides):
        path = tuple(part for part in dotted.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, path, overrides[dotted])
    return layer


def _assign(target: dict[str, Any], path: ConfigPath, value: object) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


def _lookup(payload: Mapping[str, object], path: ConfigPath) -> object | None:
    node: object = payload
    for part in path:
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
