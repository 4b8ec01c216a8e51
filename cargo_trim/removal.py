from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .classify import CacheSnapshot, classify
from .models import REMOVABLE_ROLES, ArtifactIdentity, ArtifactLocation, Role, StorageKind
from .paths import CargoPaths
from .sizes import dir_size, to_mb


logger = logging.getLogger(__name__)

Deleter = Callable[[Path], None]

INDEX_CACHE_DIR = ".cache"


def rm_any(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
        return
    if path.is_dir():
        shutil.rmtree(path)


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


@dataclass(frozen=True)
class RemovalResult:
    bytes_freed: int = 0
    count_removed: int = 0
    failed: tuple[str, ...] = ()

    @property
    def mb_freed(self) -> float:
        return to_mb(self.bytes_freed)

    @property
    def ok(self) -> bool:
        return not self.failed


class RemovalEngine:
    """Deletes artifacts of one storage kind.

    The engine only needs three capabilities from a storage kind: locate the
    paths of an artifact, look up the recorded size of each role, and delete a
    path. The shared git db is never part of an artifact's removable roles.
    """

    def __init__(self, snapshot: CacheSnapshot, kind: StorageKind, *, deleter: Deleter = rm_any) -> None:
        self.snapshot = snapshot
        self.kind = kind
        self.deleter = deleter

    def locate(self, ident: ArtifactIdentity) -> ArtifactLocation | None:
        return self.snapshot.inventory(self.kind).locations.get(ident)

    def size(self, ident: ArtifactIdentity, role: Role) -> int:
        return self.snapshot.sizes.query(ident.key, self.kind, role)

    def delete(self, path: Path) -> None:
        self.deleter(path)

    def remove(self, idents: Iterable[ArtifactIdentity], *, dry_run: bool = False) -> RemovalResult:
        """Remove every artifact in `idents`.

        A failed delete is logged and recorded; the remaining artifacts are
        still processed. Artifacts whose paths are already gone count for
        nothing, so repeating a removal reports zero. A dry run reports what
        the real run would, without touching disk.
        """

        freed = 0
        count = 0
        failed: list[str] = []

        for ident in sorted(set(idents), key=lambda i: i.key):
            loc = self.locate(ident)
            if loc is None:
                continue

            if dry_run:
                present = [r for r in REMOVABLE_ROLES[self.kind] if any(_exists(p) for p in loc.paths.get(r, ()))]
                if present:
                    count += 1
                    freed += sum(self.size(ident, r) for r in present)
                    logger.debug("would remove %s", ident.key)
                continue

            removed_any = False
            had_failure = False
            for role in REMOVABLE_ROLES[self.kind]:
                targets = [p for p in loc.paths.get(role, ()) if _exists(p)]
                if not targets:
                    continue
                role_ok = True
                for p in targets:
                    try:
                        self.delete(p)
                    except OSError as e:
                        logger.warning("failed to remove %s (%s): %s", ident.key, p, e)
                        role_ok = False
                        continue
                    removed_any = True
                if role_ok:
                    freed += self.size(ident, role)
                else:
                    had_failure = True

            if had_failure:
                failed.append(ident.key)
            elif removed_any:
                count += 1
                logger.debug("removed %s", ident.key)

        return RemovalResult(bytes_freed=freed, count_removed=count, failed=tuple(failed))

    def resolve(self, name: str) -> frozenset[ArtifactIdentity]:
        """Artifacts matching `name`: an exact key (`foo-1.0.0`) or every version of a package."""

        inv = self.snapshot.inventory(self.kind)
        exact = inv.by_key().get(name)
        if exact is not None:
            return frozenset({exact})
        return frozenset(i for i in inv.installed if i.package_name == name)

    def remove_crate(self, name: str, *, dry_run: bool = False) -> RemovalResult:
        return self.remove(self.resolve(name), dry_run=dry_run)

    def remove_crates(self, names: Iterable[str], *, dry_run: bool = False) -> RemovalResult:
        idents: set[ArtifactIdentity] = set()
        for name in names:
            idents |= self.resolve(name)
        return self.remove(idents, dry_run=dry_run)

    def remove_category(self, category: str, *, dry_run: bool = False) -> RemovalResult:
        """Remove one classification set: installed, old, orphan or old_orphan."""

        if category == "used":
            raise ValueError("refusing to remove used crates by category")
        return self.remove(classify(self.snapshot, self.kind).get(category), dry_run=dry_run)

    def remove_old(self, *, dry_run: bool = False) -> RemovalResult:
        return self.remove_category("old", dry_run=dry_run)

    def remove_orphan(self, *, dry_run: bool = False) -> RemovalResult:
        return self.remove_category("orphan", dry_run=dry_run)

    def remove_old_orphan(self, *, dry_run: bool = False) -> RemovalResult:
        return self.remove_category("old_orphan", dry_run=dry_run)

    def remove_all(self, *, dry_run: bool = False) -> RemovalResult:
        return self.remove_category("installed", dry_run=dry_run)


def _remove_tree(path: Path, *, dry_run: bool, deleter: Deleter) -> tuple[int, bool]:
    """Delete one folder. Returns (bytes freed, ok)."""

    if not _exists(path):
        return 0, True
    size = dir_size(path)
    if dry_run:
        logger.debug("would remove %s", path)
        return size, True
    try:
        deleter(path)
    except OSError as e:
        logger.warning("failed to remove %s: %s", path, e)
        return 0, False
    return size, True


@dataclass(frozen=True)
class LightCleanupResult:
    ok: bool
    bytes_freed: int = 0

    @property
    def mb_freed(self) -> float:
        return to_mb(self.bytes_freed)


def light_cleanup(src_dir: Path, index_dir: Path, *, dry_run: bool = False, deleter: Deleter = rm_any) -> LightCleanupResult:
    """Delete extracted sources and index caches, keeping `.crate` archives.

    Cargo can re-extract from the archives without downloading again. Git
    storage is not touched.
    """

    freed, ok = _remove_tree(src_dir, dry_run=dry_run, deleter=deleter)

    if index_dir.is_dir():
        try:
            mirrors = sorted(index_dir.iterdir())
        except OSError as e:
            logger.warning("unable to list %s: %s", index_dir, e)
            mirrors = []
            ok = False
        for mirror in mirrors:
            n, mirror_ok = _remove_tree(mirror / INDEX_CACHE_DIR, dry_run=dry_run, deleter=deleter)
            freed += n
            ok = ok and mirror_ok

    return LightCleanupResult(ok=ok, bytes_freed=freed)


def wipe(paths: CargoPaths, target: str, *, dry_run: bool = False, deleter: Deleter = rm_any) -> RemovalResult:
    """Remove one whole cache folder (git, checkouts, db, registry, cache, index or src)."""

    folders = paths.folders()
    if target not in folders:
        raise ValueError(f"unknown wipe target: {target!r} (expected one of {sorted(folders)})")
    folder = folders[target]
    existed = _exists(folder)
    freed, ok = _remove_tree(folder, dry_run=dry_run, deleter=deleter)
    if not ok:
        return RemovalResult(failed=(str(folder),))
    return RemovalResult(bytes_freed=freed, count_removed=1 if existed else 0)


def force_remove(
    paths: CargoPaths,
    kinds: Iterable[StorageKind],
    *,
    dry_run: bool = False,
    deleter: Deleter = rm_any,
) -> RemovalResult:
    """Remove all cached crates of the given kinds without classifying them.

    Registry: archive cache and extracted sources. Git: checkouts and db.
    """

    targets: list[Path] = []
    for kind in kinds:
        if kind is StorageKind.REGISTRY:
            targets += [paths.cache_dir, paths.src_dir]
        else:
            targets += [paths.checkout_dir, paths.db_dir]

    freed = 0
    count = 0
    failed: list[str] = []
    for folder in targets:
        existed = _exists(folder)
        n, ok = _remove_tree(folder, dry_run=dry_run, deleter=deleter)
        if not ok:
            failed.append(str(folder))
            continue
        freed += n
        count += 1 if existed else 0
    return RemovalResult(bytes_freed=freed, count_removed=count, failed=tuple(failed))
