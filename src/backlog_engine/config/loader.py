"""
backlog-engine — runtime config loader.

File: src/backlog_engine/config/loader.py

Purpose
- Resolve the effective engine config from four layers: built-in defaults, the
  ``backlog.toml`` file, ``BACKLOG_*`` environment variables and CLI overrides.

Functional requirements
- Later layers win: CLI > env > file > defaults. A profile overlay applies on top
  of the file layer, below env and CLI.
- Env values are coerced by the type of the default they replace; list defaults
  accept comma separated values.
- ``paths.*`` values are resolved relative to the directory of the config file.
- Every layer is validated by the schema; load problems raise ``ConfigLoadError``.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from backlog_engine.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "backlog.toml"
ENV_PREFIX: Final[str] = "BACKLOG_"
PROFILE_ENV_VAR: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "n", "off"})

# Sections whose keys are never bound to environment variables.
_UNBOUND_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})

ValueKind = Literal["str", "int", "float", "bool", "list"]


class ConfigLoadError(ValueError):
    """Raised when the config file cannot be read or an override cannot be coerced."""


@dataclass(frozen=True, slots=True)
class EnvBinding:
    """One ``BACKLOG_SECTION_KEY`` variable and the config field it overrides."""

    env_name: str
    path: tuple[str, ...]
    kind: ValueKind

    @property
    def dotted(self) -> str:
        return ".".join(self.path)

    def coerce(self, raw: str) -> object:
        text = raw.strip()
        if self.kind == "str":
            return text
        if self.kind == "list":
            return [part.strip() for part in text.split(",") if part.strip()]
        if self.kind == "bool":
            lowered = text.lower()
            if lowered in _TRUTHY:
                return True
            if lowered in _FALSY:
                return False
            raise ConfigLoadError(f"{self.env_name} -> {self.dotted} expects a boolean")
        converter = int if self.kind == "int" else float
        try:
            return converter(text)
        except ValueError as exc:
            expected = "an integer" if self.kind == "int" else "a number"
            raise ConfigLoadError(f"{self.env_name} -> {self.dotted} expects {expected}") from exc


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    search_dir: Path | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    ``config_path`` must exist when given. Otherwise ``backlog.toml`` is looked up
    in ``search_dir`` (default: the working directory) and skipped when absent.
    ``cli_overrides`` maps dotted field paths to already-typed values.
    """

    env = os.environ if environ is None else environ
    source = _locate_config_file(config_path, search_dir)
    file_layer = _read_toml(source, required=config_path is not None)

    config = assert_valid_config(merge_config(default_config(), file_layer))
    selected = _pick_profile(profile, env)
    if selected is not None:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, env_layer(config, env))
    config = merge_config(config, cli_layer(cli_overrides or {}))
    config = normalize_paths(config, base_dir=source.parent)
    return assert_valid_config(config, active_profile=selected)


def env_bindings(config: Mapping[str, object]) -> dict[str, EnvBinding]:
    """Map every overridable scalar or list field of ``config`` to its env variable."""

    bindings: dict[str, EnvBinding] = {}
    for path, value in _walk_leaves(config):
        if path[0] in _UNBOUND_SECTIONS:
            continue
        kind = _kind_of(value)
        if kind is None:
            continue
        name = ENV_PREFIX + "_".join(part.upper() for part in path)
        bindings[name] = EnvBinding(env_name=name, path=path, kind=kind)
    return bindings


def env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for name, binding in sorted(env_bindings(config).items()):
        if name in environ:
            _assign(layer, binding.path, binding.coerce(environ[name]))
    return layer


def cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted in sorted(overrides):
        path = tuple(part for part in dotted.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        _assign(layer, path, overrides[dotted])
    return layer


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve ``paths.*`` fields (top level and inside profiles) against ``base_dir``."""

    result = merge_config({}, config)
    targets: list[tuple[str, ...]] = list(PATH_FIELDS)
    profiles = result.get("profiles")
    if isinstance(profiles, dict):
        for name in sorted(profiles):
            targets.extend(("profiles", name, *field) for field in PATH_FIELDS)

    for path in targets:
        parent = _lookup(result, path[:-1])
        if isinstance(parent, dict) and isinstance(parent.get(path[-1]), str):
            parent[path[-1]] = _absolute_posix(parent[path[-1]], base_dir)
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Serialize the effective config as stable, compact JSON."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _locate_config_file(config_path: str | Path | None, search_dir: Path | None) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser().resolve()
    return ((search_dir or Path.cwd()) / DEFAULT_CONFIG_FILE).resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"cannot read config file {path}: {exc}") from exc


def _pick_profile(explicit: str | None, environ: Mapping[str, str]) -> str | None:
    candidate = explicit if explicit is not None else environ.get(PROFILE_ENV_VAR)
    if candidate is None:
        return None
    return candidate.strip() or None


def _walk_leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _walk_leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _kind_of(value: object) -> ValueKind | None:
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    if isinstance(value, (list, tuple)):
        return "list"
    return None


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


def _lookup(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
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
    "EnvBinding",
    "PROFILE_ENV_VAR",
    "cli_layer",
    "dump_effective_config",
    "env_bindings",
    "env_layer",
    "load_config",
    "normalize_paths",
]
