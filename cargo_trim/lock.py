"""Read-only Cargo.lock parsing.

Only the `[[package]]` array matters here: each entry with a `source` points at
an artifact in the Cargo cache. Entries without a source are path or workspace
members and never live in the cache.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit

from .models import ReferenceEntry, StorageKind


try:  # Python 3.11+
    import tomllib as _tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover (dev envs < 3.11)
    import tomli as _tomllib  # type: ignore


LOCK_FILE_NAME = "Cargo.lock"

_REGISTRY_PREFIXES = ("registry+", "sparse+")
_GIT_PREFIX = "git+"


class LockfileError(ValueError):
    """Raised when a lock file cannot be read or does not match the expected schema."""


def _expect_str(value: Any, *, ctx: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise LockfileError(f"Invalid lockfile: {ctx} must be a non-empty string")
    return value


def repo_name_from_url(url: str) -> str:
    """`https://github.com/serde-rs/serde.git?branch=x#abc` -> `serde`."""

    path = urlsplit(url).path.rstrip("/")
    leaf = path.rsplit("/", 1)[-1]
    if leaf.endswith(".git"):
        leaf = leaf[: -len(".git")]
    return leaf


def source_kind(source: str) -> StorageKind | None:
    if source.startswith(_REGISTRY_PREFIXES):
        return StorageKind.REGISTRY
    if source.startswith(_GIT_PREFIX):
        return StorageKind.GIT
    return None


def parse_package(data: Mapping[str, Any], *, ctx: str) -> ReferenceEntry | None:
    name = _expect_str(data.get("name"), ctx=f"{ctx}.name")
    version = _expect_str(data.get("version"), ctx=f"{ctx}.version")

    source_raw = data.get("source")
    if source_raw is None:
        return None
    source = _expect_str(source_raw, ctx=f"{ctx}.source")

    kind = source_kind(source)
    if kind is None:
        return None
    if kind is StorageKind.GIT:
        return ReferenceEntry(
            name=name,
            version=version,
            kind=kind,
            repo=repo_name_from_url(source[len(_GIT_PREFIX) :]),
        )
    return ReferenceEntry(name=name, version=version, kind=kind)


def load_lock(path: str | Path) -> tuple[ReferenceEntry, ...]:
    """Parse the cache-backed dependencies of a Cargo.lock file.

    Raises LockfileError for read/parse/schema errors.
    """

    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LockfileError(f"Invalid lockfile: unable to read {p}") from e

    try:
        data = _tomllib.loads(raw)
    except _tomllib.TOMLDecodeError as e:
        raise LockfileError(f"Invalid lockfile: invalid TOML in {p}") from e

    pkgs_raw = data.get("package", [])
    if not isinstance(pkgs_raw, list):
        raise LockfileError("Invalid lockfile: package must be an array of tables")

    out: list[ReferenceEntry] = []
    for i, pkg in enumerate(pkgs_raw):
        if not isinstance(pkg, Mapping):
            raise LockfileError(f"Invalid lockfile: package[{i}] must be a table")
        entry = parse_package(pkg, ctx=f"package[{i}]")
        if entry is not None:
            out.append(entry)
    return tuple(out)
