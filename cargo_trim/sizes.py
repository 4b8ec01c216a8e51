from __future__ import annotations

import logging
import os
from pathlib import Path

from .models import TOTAL_ROLES, Role, StorageKind


logger = logging.getLogger(__name__)

BYTES_PER_MB = 1_000_000


def to_mb(nbytes: int | float) -> float:
    """Decimal megabytes, used by every size report."""

    return float(nbytes) / BYTES_PER_MB


def dir_size(path: Path) -> int:
    """Total size of regular files under `path` (symlinks are not followed).

    Missing paths count as 0. Unreadable entries are logged and skipped.
    """

    try:
        st = path.lstat()
    except FileNotFoundError:
        return 0
    except OSError as e:
        logger.warning("unable to stat %s: %s", path, e)
        return 0
    if not path.is_dir() or path.is_symlink():
        return st.st_size

    def _onerror(err: OSError) -> None:
        logger.warning("unable to list %s: %s", err.filename, err)

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=_onerror):
        for name in filenames:
            p = os.path.join(dirpath, name)
            try:
                total += os.lstat(p).st_size
            except OSError as e:
                logger.warning("unable to stat %s: %s", p, e)
    return total


class SizeIndex:
    """Byte sizes keyed by (artifact key, storage kind, role).

    Recording an existing key adds to it: the same crate can be present under
    several index mirrors. Unknown keys report 0.

    Sizes recorded with a `package` are also reachable through that package
    name, so `query_total("serde", GIT)` covers every checkout of the `serde`
    repository plus its shared db.
    """

    def __init__(self) -> None:
        self._sizes: dict[tuple[str, StorageKind, Role], int] = {}
        self._members: dict[tuple[str, StorageKind], set[str]] = {}
        self._owner: dict[tuple[str, StorageKind], str] = {}

    def record(self, key: str, kind: StorageKind, role: Role, nbytes: int, *, package: str | None = None) -> None:
        k = (key, kind, role)
        self._sizes[k] = self._sizes.get(k, 0) + int(nbytes)
        if package is not None and package != key:
            self._members.setdefault((package, kind), set()).add(key)
            self._owner[(key, kind)] = package

    def query(self, key: str, kind: StorageKind, role: Role) -> int:
        return self._sizes.get((key, kind, role), 0)

    def query_total(self, key: str, kind: StorageKind) -> int:
        """Sum of every role of `key`.

        A package name also counts the artifacts recorded under it; an artifact
        key also counts the sizes kept at its package level (the git db).
        """

        keys = {key} | self._members.get((key, kind), set())
        owner = self._owner.get((key, kind))
        if owner is not None:
            keys.add(owner)
        return sum(self.query(k, kind, role) for k in keys for role in TOTAL_ROLES[kind])

    def query_mb(self, key: str, kind: StorageKind) -> float:
        return to_mb(self.query_total(key, kind))

    def packages(self, kind: StorageKind) -> list[str]:
        return sorted(p for p, kd in self._members if kd == kind)

    def entries(self, kind: StorageKind, role: Role) -> dict[str, int]:
        return {k: v for (k, kd, r), v in self._sizes.items() if kd == kind and r == role}

    def top(self, kind: StorageKind, role: Role, n: int) -> list[tuple[str, int]]:
        """Largest `n` entries for a role, ties ordered by key."""

        items = sorted(self.entries(kind, role).items(), key=lambda kv: (-kv[1], kv[0]))
        return items[: max(n, 0)]

    def top_packages(self, kind: StorageKind, n: int) -> list[tuple[str, int]]:
        """Largest `n` packages by total size, ties ordered by name."""

        items = sorted(((p, self.query_total(p, kind)) for p in self.packages(kind)), key=lambda kv: (-kv[1], kv[0]))
        return items[: max(n, 0)]

    def __len__(self) -> int:
        return len(self._sizes)
