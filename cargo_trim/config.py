from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable

from . import paths
from .errors import ConfigParseError, ConfigValidationError
from .toml_write import toml_string_array


try:  # Python 3.11+
    import tomllib as _tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover (dev envs < 3.11)
    import tomli as _tomllib  # type: ignore


_ALLOWED_KEYS = ("directory", "include", "exclude")


@dataclass(frozen=True)
class TrimConfig:
    """Persisted settings.

    `directory` lists tracked project directories; `include` names are always
    treated as used and `exclude` names never are.
    """

    directory: tuple[str, ...] = ()
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


def _load_toml(path: Path) -> dict[str, Any] | None:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ConfigValidationError(path=path, message=f"unable to read file: {e}") from e

    try:
        data = _tomllib.loads(text)
    except _tomllib.TOMLDecodeError as e:
        msg = getattr(e, "msg", str(e))
        lineno = getattr(e, "lineno", None)
        colno = getattr(e, "colno", None)
        raise ConfigParseError(path=path, message=str(msg), lineno=lineno, colno=colno) from e

    if not isinstance(data, dict):
        raise ConfigValidationError(path=path, message="top-level TOML must be a table")
    return data


def _unknown_keys_message(unknown: set[str]) -> str:
    keys = ", ".join(sorted(unknown))
    return f"unknown keys: {keys}"


def _optional_str_list(path: Path, value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigValidationError(path=path, message=f"{where}: expected list of strings")
    return tuple(value)


def load_config(path: Path | None = None) -> TrimConfig:
    """Load the config file. A missing file is an empty config."""

    p = path or paths.config_path()
    data = _load_toml(p)
    if data is None:
        return TrimConfig()

    unknown = set(data.keys()) - set(_ALLOWED_KEYS)
    if unknown:
        raise ConfigValidationError(path=p, message=_unknown_keys_message(unknown))

    return TrimConfig(
        directory=_optional_str_list(p, data.get("directory"), "directory"),
        include=_optional_str_list(p, data.get("include"), "include"),
        exclude=_optional_str_list(p, data.get("exclude"), "exclude"),
    )


def render_config(cfg: TrimConfig) -> str:
    lines = [f"{key} = {toml_string_array(getattr(cfg, key))}" for key in _ALLOWED_KEYS]
    return "\n".join(lines) + "\n"


def save_config(cfg: TrimConfig, path: Path | None = None) -> Path:
    p = path or paths.config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(render_config(cfg), encoding="utf-8")
    tmp.replace(p)
    return p


def clear_config(path: Path | None = None) -> bool:
    """Delete the config file. Returns whether one existed."""

    p = path or paths.config_path()
    if not p.exists():
        return False
    p.unlink()
    return True


def _add(values: tuple[str, ...], new: Iterable[str]) -> tuple[str, ...]:
    out = list(values)
    for v in new:
        if v not in out:
            out.append(v)
    return tuple(out)


def _remove(values: tuple[str, ...], old: Iterable[str]) -> tuple[str, ...]:
    drop = set(old)
    return tuple(v for v in values if v not in drop)


def add_directories(cfg: TrimConfig, dirs: Iterable[str | Path]) -> TrimConfig:
    resolved = [str(Path(d).expanduser().resolve()) for d in dirs]
    return replace(cfg, directory=_add(cfg.directory, resolved))


def remove_directories(cfg: TrimConfig, dirs: Iterable[str | Path]) -> TrimConfig:
    resolved = [str(Path(d).expanduser().resolve()) for d in dirs]
    return replace(cfg, directory=_remove(cfg.directory, resolved))


def add_include(cfg: TrimConfig, names: Iterable[str]) -> TrimConfig:
    return replace(cfg, include=_add(cfg.include, names))


def remove_include(cfg: TrimConfig, names: Iterable[str]) -> TrimConfig:
    return replace(cfg, include=_remove(cfg.include, names))


def add_exclude(cfg: TrimConfig, names: Iterable[str]) -> TrimConfig:
    return replace(cfg, exclude=_add(cfg.exclude, names))


def remove_exclude(cfg: TrimConfig, names: Iterable[str]) -> TrimConfig:
    return replace(cfg, exclude=_remove(cfg.exclude, names))
