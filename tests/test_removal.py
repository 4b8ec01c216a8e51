from __future__ import annotations

from pathlib import Path

import pytest
from _cache import CRATES_IO_MIRROR, CRATES_IO_SOURCE, CacheBuilder, write_lock

from cargo_trim.classify import build_snapshot
from cargo_trim.models import ArtifactIdentity, StorageKind
from cargo_trim.paths import CargoPaths
from cargo_trim.removal import RemovalEngine, force_remove, light_cleanup, rm_any, wipe


REG = StorageKind.REGISTRY
GIT = StorageKind.GIT


def _populate(cache: CacheBuilder, tmp_path: Path) -> Path:
    cache.registry("foo-1.0.0")
    cache.registry("foo-1.2.0")
    cache.registry("bar-0.9.0")
    cache.registry("baz-bar-2.0.0", source=None)
    project = tmp_path / "project"
    write_lock(project, [("foo", "1.2.0", CRATES_IO_SOURCE)])
    return project


def _src(paths: CargoPaths, key: str) -> Path:
    return paths.src_dir / CRATES_IO_MIRROR / key


def _archive(paths: CargoPaths, key: str) -> Path:
    return paths.cache_dir / CRATES_IO_MIRROR / f"{key}.crate"


def test_dry_run_matches_real_run_and_leaves_disk(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    snap = build_snapshot(cargo_paths, [project])
    engine = RemovalEngine(snap, REG)

    preview = engine.remove_orphan(dry_run=True)
    assert _src(cargo_paths, "bar-0.9.0").exists()
    assert _archive(cargo_paths, "baz-bar-2.0.0").exists()

    real = engine.remove_orphan()

    assert (preview.bytes_freed, preview.count_removed) == (real.bytes_freed, real.count_removed)
    assert real.count_removed == 2
    assert real.bytes_freed == 110 + 10
    assert real.ok
    assert not _src(cargo_paths, "bar-0.9.0").exists()
    assert not _archive(cargo_paths, "bar-0.9.0").exists()
    assert not _archive(cargo_paths, "baz-bar-2.0.0").exists()
    assert _src(cargo_paths, "foo-1.0.0").exists()


def test_second_removal_is_a_no_op(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    engine = RemovalEngine(build_snapshot(cargo_paths, [project]), REG)

    first = engine.remove_old()
    assert first.count_removed == 1
    assert not _src(cargo_paths, "foo-1.0.0").exists()

    again = engine.remove_old()
    assert (again.bytes_freed, again.count_removed, again.failed) == (0, 0, ())
    assert engine.remove_old(dry_run=True).count_removed == 0


def test_remove_crate_by_key_or_name(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    engine = RemovalEngine(build_snapshot(cargo_paths, [project]), REG)

    res = engine.remove_crate("foo-1.0.0")
    assert res.count_removed == 1
    assert _src(cargo_paths, "foo-1.2.0").exists()

    res = engine.remove_crate("foo")
    assert res.count_removed == 1
    assert not _src(cargo_paths, "foo-1.2.0").exists()


def test_removing_absent_crate_reports_zero(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    engine = RemovalEngine(build_snapshot(cargo_paths, [project]), REG)

    res = engine.remove_crate("baz")
    assert (res.bytes_freed, res.count_removed, res.failed) == (0, 0, ())
    assert engine.remove([ArtifactIdentity("baz", "1.0.0", REG)]).count_removed == 0


def test_failed_delete_does_not_stop_the_rest(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    snap = build_snapshot(cargo_paths, [project])
    blocked = _src(cargo_paths, "bar-0.9.0")

    def deleter(path: Path) -> None:
        if path == blocked:
            raise PermissionError(13, "Permission denied", str(path))
        rm_any(path)

    res = RemovalEngine(snap, REG, deleter=deleter).remove_all()

    assert res.failed == ("bar-0.9.0",)
    assert res.count_removed == 3
    # The archive of the failed crate was still deleted and counted.
    assert res.bytes_freed == 110 * 2 + 10 + 10
    assert blocked.exists()
    assert not _archive(cargo_paths, "bar-0.9.0").exists()
    assert not res.ok


def test_used_category_cannot_be_removed(cargo_paths: CargoPaths, cache: CacheBuilder, tmp_path: Path) -> None:
    project = _populate(cache, tmp_path)
    engine = RemovalEngine(build_snapshot(cargo_paths, [project]), REG)
    with pytest.raises(ValueError):
        engine.remove_category("used")


def test_git_removal_keeps_shared_db(cargo_paths: CargoPaths, cache: CacheBuilder) -> None:
    old = cache.git("serde", "abc1234", mtime=1_000_000)
    new = cache.git("serde", "def5678", mtime=2_000_000)
    snap = build_snapshot(cargo_paths, [])
    engine = RemovalEngine(snap, GIT)

    assert engine.remove_old(dry_run=True).count_removed == 1
    res = engine.remove_old()

    assert res.count_removed == 1
    assert res.bytes_freed == 50
    assert not old.exists()
    assert new.exists()
    assert (cargo_paths.db_dir / "serde-1a2b3c4d5e6f7a8b").exists()


def test_light_cleanup_keeps_archives(cargo_paths: CargoPaths, cache: CacheBuilder) -> None:
    cache.registry("serde-1.0.190")
    index_cache = cache.index_cache()
    checkout = cache.git("tool", "0a1b2c3")

    preview = light_cleanup(cargo_paths.src_dir, cargo_paths.index_dir, dry_run=True)
    assert preview.ok
    assert cargo_paths.src_dir.exists()
    assert index_cache.exists()

    res = light_cleanup(cargo_paths.src_dir, cargo_paths.index_dir)

    assert res.ok
    assert res.bytes_freed == preview.bytes_freed == 100 + 30
    assert not cargo_paths.src_dir.exists()
    assert not index_cache.exists()
    assert (cargo_paths.index_dir / CRATES_IO_MIRROR / "config.json").exists()
    assert _archive(cargo_paths, "serde-1.0.190").exists()
    assert checkout.exists()


def test_wipe_and_force_remove(cargo_paths: CargoPaths, cache: CacheBuilder) -> None:
    cache.registry("serde-1.0.190")
    cache.git("tool", "0a1b2c3")

    res = wipe(cargo_paths, "db", dry_run=True)
    assert (res.bytes_freed, res.count_removed) == (20, 1)
    assert cargo_paths.db_dir.exists()

    res = wipe(cargo_paths, "db")
    assert not cargo_paths.db_dir.exists()
    assert wipe(cargo_paths, "db").count_removed == 0

    with pytest.raises(ValueError):
        wipe(cargo_paths, "everything")

    res = force_remove(cargo_paths, [REG])
    assert res.count_removed == 2
    assert res.bytes_freed == 110
    assert not cargo_paths.cache_dir.exists()
    assert not cargo_paths.src_dir.exists()
    assert cargo_paths.checkout_dir.exists()
