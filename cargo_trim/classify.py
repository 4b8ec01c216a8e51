"""Classification of cached artifacts against tracked projects.

All sets are derived from two inputs per storage kind: the installed artifacts
found on disk and the names referenced by tracked lock files. Nothing here
touches the filesystem once a snapshot exists, so snapshots can be built by hand
in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .errors import CacheAccessError
from .manifest import ReferenceSet, aggregate_references
from .models import REMOVABLE_ROLES, ArtifactIdentity, StorageKind
from .paths import CargoPaths
from .resolver import version_sort_key
from .scanner import KindInventory, scan_git, scan_registry
from .sizes import SizeIndex, to_mb


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheSnapshot:
    """Everything known about the cache for one invocation.

    `inaccessible` holds the error for each storage kind whose base directory
    could not be listed. Asking for that kind's inventory raises it again, so
    work on the other kind is unaffected.
    """

    registry: KindInventory = field(default_factory=lambda: KindInventory(kind=StorageKind.REGISTRY))
    git: KindInventory = field(default_factory=lambda: KindInventory(kind=StorageKind.GIT))
    sizes: SizeIndex = field(default_factory=SizeIndex)
    references: ReferenceSet = field(default_factory=ReferenceSet)
    inaccessible: dict[StorageKind, CacheAccessError] = field(default_factory=dict)

    def require(self, kind: StorageKind) -> None:
        err = self.inaccessible.get(kind)
        if err is not None:
            raise err

    def inventory(self, kind: StorageKind) -> KindInventory:
        self.require(kind)
        return self.registry if kind is StorageKind.REGISTRY else self.git

    @property
    def degenerate(self) -> bool:
        """True when no project is tracked, so nothing can be classified as used."""

        return self.references.tracked_empty

    def artifact_size(self, ident: ArtifactIdentity) -> int:
        """Bytes freed by removing `ident` (the shared git db is not included)."""

        return sum(self.sizes.query(ident.key, ident.kind, role) for role in REMOVABLE_ROLES[ident.kind])

    def artifact_mb(self, ident: ArtifactIdentity) -> float:
        return to_mb(self.artifact_size(ident))


def _scan_kind(
    kind: StorageKind, scan: Callable[[], KindInventory], inaccessible: dict[StorageKind, CacheAccessError]
) -> KindInventory:
    try:
        return scan()
    except CacheAccessError as e:
        logger.warning("%s cache is not accessible: %s", kind.value, e)
        inaccessible[kind] = e
        return KindInventory(kind=kind)


def build_snapshot(
    paths: CargoPaths,
    directories: Iterable[str | Path],
    *,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> CacheSnapshot:
    sizes = SizeIndex()
    inaccessible: dict[StorageKind, CacheAccessError] = {}
    registry = _scan_kind(
        StorageKind.REGISTRY, lambda: scan_registry(paths.cache_dir, paths.src_dir, sizes), inaccessible
    )
    git = _scan_kind(StorageKind.GIT, lambda: scan_git(paths.checkout_dir, paths.db_dir, sizes), inaccessible)
    references = aggregate_references(directories, include=include, exclude=exclude)
    return CacheSnapshot(registry=registry, git=git, sizes=sizes, references=references, inaccessible=inaccessible)


def installed(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    return snapshot.inventory(kind).installed


def _group_by_name(idents: Iterable[ArtifactIdentity]) -> dict[str, list[ArtifactIdentity]]:
    groups: dict[str, list[ArtifactIdentity]] = {}
    for ident in idents:
        groups.setdefault(ident.package_name, []).append(ident)
    return groups


def _newest(snapshot: CacheSnapshot, kind: StorageKind, group: list[ArtifactIdentity]) -> ArtifactIdentity:
    if kind is StorageKind.REGISTRY:
        return max(group, key=lambda i: version_sort_key(i.version or "0.0.0"))
    locs = snapshot.git.locations
    return max(group, key=lambda i: (locs[i].modified if i in locs else 0.0, i.version or ""))


def newest(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    """The newest artifact of every installed package."""

    groups = _group_by_name(installed(snapshot, kind))
    return frozenset(_newest(snapshot, kind, g) for g in groups.values())


def old(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    """Artifacts superseded by a newer installed artifact of the same package.

    Registry crates are ordered by semver precedence; git checkouts of the same
    repository by modification time.
    """

    return installed(snapshot, kind) - newest(snapshot, kind)


def used(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    """Installed artifacts whose package name any tracked lock file references.

    Versions are not compared: a lock file pinning a superseded version still
    keeps every installed version of that package out of the orphan set.
    """

    if snapshot.degenerate:
        return frozenset()
    names = snapshot.references.names(kind)
    return frozenset(i for i in installed(snapshot, kind) if i.package_name in names)


def orphan(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    return installed(snapshot, kind) - used(snapshot, kind)


def old_orphan(snapshot: CacheSnapshot, kind: StorageKind) -> frozenset[ArtifactIdentity]:
    return old(snapshot, kind) & orphan(snapshot, kind)


@dataclass(frozen=True)
class KindClassification:
    kind: StorageKind
    installed: frozenset[ArtifactIdentity]
    old: frozenset[ArtifactIdentity]
    used: frozenset[ArtifactIdentity]
    orphan: frozenset[ArtifactIdentity]
    old_orphan: frozenset[ArtifactIdentity]

    def get(self, category: str) -> frozenset[ArtifactIdentity]:
        if category not in CATEGORIES:
            raise ValueError(f"unknown category: {category!r}")
        return getattr(self, category)


CATEGORIES = ("installed", "old", "used", "orphan", "old_orphan")


def classify(snapshot: CacheSnapshot, kind: StorageKind) -> KindClassification:
    return KindClassification(
        kind=kind,
        installed=installed(snapshot, kind),
        old=old(snapshot, kind),
        used=used(snapshot, kind),
        orphan=orphan(snapshot, kind),
        old_orphan=old_orphan(snapshot, kind),
    )


def display_rows(snapshot: CacheSnapshot, idents: Iterable[ArtifactIdentity]) -> list[tuple[str, float]]:
    """(key, size in MB) rows sorted by key."""

    return sorted(((i.key, snapshot.artifact_mb(i)) for i in idents), key=lambda r: r[0])
