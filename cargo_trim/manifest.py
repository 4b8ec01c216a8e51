from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .lock import LOCK_FILE_NAME, LockfileError, load_lock
from .models import ReferenceEntry, StorageKind


logger = logging.getLogger(__name__)

_SKIP_DIRS = {"target", "node_modules"}


@dataclass(frozen=True)
class ReferenceSet:
    """Package names referenced by tracked projects, per storage kind.

    `tracked_empty` is set when no project directory is tracked at all; every
    installed artifact is then an orphan and callers should warn before acting.
    """

    registry: frozenset[str] = frozenset()
    git: frozenset[str] = frozenset()
    tracked_empty: bool = False
    skipped: int = 0
    lock_files: tuple[Path, ...] = ()

    def names(self, kind: StorageKind) -> frozenset[str]:
        return self.registry if kind is StorageKind.REGISTRY else self.git

    def is_empty(self) -> bool:
        return not self.registry and not self.git


def find_lock_files(root: Path) -> list[Path]:
    """Lock files for a tracked directory.

    A project root with its own Cargo.lock contributes just that file; any other
    directory is searched recursively (build output and hidden dirs skipped).
    """

    direct = root / LOCK_FILE_NAME
    if direct.is_file():
        return [direct]

    def _onerror(err: OSError) -> None:
        logger.warning("unable to list %s: %s", err.filename, err)

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS and not d.startswith("."))
        if LOCK_FILE_NAME in filenames:
            found.append(Path(dirpath) / LOCK_FILE_NAME)
    return found


def aggregate_references(
    directories: Iterable[str | Path],
    *,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> ReferenceSet:
    """Merge the lock files of all tracked directories into one ReferenceSet.

    A directory that is missing, has no lock file, or whose lock file cannot be
    parsed is skipped and counted; the rest are still read. `include` names are
    treated as referenced and `exclude` names as unreferenced, for both kinds.
    """

    dirs = [Path(d).expanduser() for d in directories]
    if not dirs:
        return ReferenceSet(tracked_empty=True)

    entries: list[ReferenceEntry] = []
    lock_files: list[Path] = []
    skipped = 0

    for root in dirs:
        if not root.is_dir():
            logger.warning("tracked directory not found: %s", root)
            skipped += 1
            continue
        found = find_lock_files(root)
        if not found:
            logger.warning("no %s found under %s", LOCK_FILE_NAME, root)
            skipped += 1
            continue
        read_any = False
        for lf in found:
            try:
                entries.extend(load_lock(lf))
            except LockfileError as e:
                logger.warning("skipping %s: %s", lf, e)
                continue
            lock_files.append(lf)
            read_any = True
        if not read_any:
            skipped += 1

    registry = {e.name for e in entries if e.kind is StorageKind.REGISTRY}
    git: set[str] = set()
    for e in entries:
        if e.kind is StorageKind.GIT:
            git.add(e.name)
            if e.repo:
                git.add(e.repo)

    inc = set(include)
    exc = set(exclude)
    registry = (registry | inc) - exc
    git = (git | inc) - exc

    return ReferenceSet(
        registry=frozenset(registry),
        git=frozenset(git),
        tracked_empty=False,
        skipped=skipped,
        lock_files=tuple(lock_files),
    )
