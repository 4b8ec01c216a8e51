from __future__ import annotations

from pathlib import Path

from _cache import CRATES_IO_SOURCE, write_lock

from cargo_trim.manifest import aggregate_references, find_lock_files
from cargo_trim.models import StorageKind


GIT_SOURCE = "git+https://github.com/acme/shared-utils?branch=main#0123456789abcdef"


def test_union_across_projects(tmp_path: Path) -> None:
    write_lock(tmp_path / "a", [("a", "0.1.0", None), ("serde", "1.0.0", CRATES_IO_SOURCE)])
    write_lock(tmp_path / "b", [("rand", "0.8.5", CRATES_IO_SOURCE), ("utils", "0.1.0", GIT_SOURCE)])

    refs = aggregate_references([tmp_path / "a", tmp_path / "b"])

    assert refs.tracked_empty is False
    assert refs.skipped == 0
    assert refs.registry == {"serde", "rand"}
    # Both the crate name and the repository name identify a git dependency.
    assert refs.git == {"utils", "shared-utils"}
    assert len(refs.lock_files) == 2


def test_missing_and_broken_projects_are_skipped(tmp_path: Path) -> None:
    write_lock(tmp_path / "good", [("serde", "1.0.0", CRATES_IO_SOURCE)])
    broken = tmp_path / "broken"
    broken.mkdir()
    (broken / "Cargo.lock").write_text("not = [valid", encoding="utf-8")
    (tmp_path / "no-lock").mkdir()

    refs = aggregate_references(
        [tmp_path / "good", broken, tmp_path / "no-lock", tmp_path / "does-not-exist"]
    )

    assert refs.skipped == 3
    assert refs.registry == {"serde"}
    assert refs.tracked_empty is False


def test_non_utf8_lock_file_is_skipped(tmp_path: Path) -> None:
    write_lock(tmp_path / "good", [("serde", "1.0.0", CRATES_IO_SOURCE)])
    bad = tmp_path / "bad"
    bad.mkdir()
    (bad / "Cargo.lock").write_bytes(b"version = 3\n# \xff\xfe\n")

    refs = aggregate_references([tmp_path / "good", bad])

    assert refs.skipped == 1
    assert refs.registry == {"serde"}
    assert refs.lock_files == (tmp_path / "good" / "Cargo.lock",)


def test_include_and_exclude_overrides(tmp_path: Path) -> None:
    write_lock(tmp_path / "p", [("serde", "1.0.0", CRATES_IO_SOURCE), ("tokio", "1.0.0", CRATES_IO_SOURCE)])

    refs = aggregate_references([tmp_path / "p"], include=["anyhow"], exclude=["tokio"])

    assert refs.names(StorageKind.REGISTRY) == {"serde", "anyhow"}
    assert refs.names(StorageKind.GIT) == {"anyhow"}


def test_empty_tracked_list_is_degenerate() -> None:
    refs = aggregate_references([], include=["serde"])
    assert refs.tracked_empty is True
    assert refs.is_empty()


def test_find_lock_files_searches_below_non_project_dirs(tmp_path: Path) -> None:
    write_lock(tmp_path / "ws" / "one", [])
    write_lock(tmp_path / "ws" / "two" / "nested", [])
    write_lock(tmp_path / "ws" / "one" / "target" / "package" / "x", [])
    write_lock(tmp_path / "ws" / ".hidden", [])

    found = find_lock_files(tmp_path / "ws")

    assert found == [
        tmp_path / "ws" / "one" / "Cargo.lock",
        tmp_path / "ws" / "two" / "nested" / "Cargo.lock",
    ]


def test_project_root_lock_file_wins(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    write_lock(root, [])
    write_lock(root / "examples" / "demo", [])
    assert find_lock_files(root) == [root / "Cargo.lock"]
