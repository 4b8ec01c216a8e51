from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .classify import CacheSnapshot, build_snapshot, classify, display_rows
from .config import (
    TrimConfig,
    add_directories,
    add_exclude,
    add_include,
    clear_config,
    load_config,
    remove_directories,
    remove_exclude,
    remove_include,
    save_config,
)
from .errors import CacheAccessError, CargoTrimConfigError
from .models import Role, StorageKind
from .paths import FOLDER_NAMES, CargoPaths
from .removal import RemovalEngine, RemovalResult, force_remove, light_cleanup, wipe
from .scanner import query_folder_sizes
from .sizes import to_mb


_DEGENERATE_WARNING = (
    "WARNING: no project directory is tracked. {effect} "
    "Run 'cargo-trim init' in a project directory or pass -d <directory>."
)

_CATEGORY_TITLES = {
    "installed": "INSTALLED",
    "old": "OLD",
    "orphan": "ORPHAN",
    "used": "USED",
    "old_orphan": "OLD+ORPHAN",
}

_DEGENERATE_EFFECTS = {
    "orphan": "Every crate is listed as orphan.",
    "used": "No crate is listed as used.",
    "old_orphan": "Every old crate is listed as old+orphan.",
}

_CLEAN_EFFECTS = {
    "orphan": "This will remove every crate since all crates are classified as orphan.",
    "old_orphan": "This will remove every old crate even if it is not orphan.",
}


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", dest="config_path", type=Path, default=None, help="Config file path")
    common.add_argument(
        "-d", "--directory", action="append", default=[], help="Track this project directory for this run (repeatable)"
    )
    common.add_argument("-i", "--include", action="append", default=[], help="Treat crate as used for this run")
    common.add_argument("-e", "--exclude", action="append", default=[], help="Treat crate as unused for this run")
    common.add_argument("-n", "--dry-run", action="store_true", help="Report what would be removed without deleting")
    common.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return common


def _add_clean_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("-a", "--all", action="store_true", help="Remove all installed crates")
    p.add_argument("-o", "--old", action="store_true", help="Remove old crates")
    p.add_argument("-x", "--orphan", action="store_true", help="Remove crates not used by any tracked project")
    p.add_argument("-z", "--old-orphan", action="store_true", help="Remove crates which are both old and orphan")
    p.add_argument("-r", "--remove", action="append", default=[], metavar="CRATE", help="Remove a crate (repeatable)")
    p.add_argument("-t", "--top", type=int, default=None, metavar="N", help="Show the N largest crates")
    p.add_argument("-q", "--query", action="store_true", help="Show cache folder sizes")


def _build_parser() -> argparse.ArgumentParser:
    common = _common_parser()
    p = argparse.ArgumentParser(
        prog="cargo-trim",
        description="Inspect and clean the Cargo registry and git caches",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init", parents=[common], help="Track a project directory (default: cwd)")
    init.add_argument("path", nargs="?", type=Path, default=None)

    cfg = sub.add_parser("config", parents=[common], help="Show or edit the persisted config")
    cfg.add_argument("--add-directory", action="append", default=[])
    cfg.add_argument("--remove-directory", action="append", default=[])
    cfg.add_argument("--add-include", action="append", default=[])
    cfg.add_argument("--remove-include", action="append", default=[])
    cfg.add_argument("--add-exclude", action="append", default=[])
    cfg.add_argument("--remove-exclude", action="append", default=[])
    cfg.add_argument("--clear", action="store_true", help="Delete the config file")

    ls = sub.add_parser("list", parents=[common], help="List cached crates by classification")
    ls.add_argument("-a", "--all", action="store_true", help="List all installed crates")
    ls.add_argument("-o", "--old", action="store_true", help="List old crates")
    ls.add_argument("-x", "--orphan", action="store_true", help="List orphan crates")
    ls.add_argument("-u", "--used", action="store_true", help="List used crates")
    ls.add_argument("-z", "--old-orphan", action="store_true", help="List old+orphan crates")

    reg = sub.add_parser("registry", parents=[common], help="Operate on registry crates")
    _add_clean_flags(reg)
    reg.add_argument(
        "-l", "--light", action="store_true", help="Remove extracted sources and index cache, keep archives"
    )

    git = sub.add_parser("git", parents=[common], help="Operate on git crates")
    _add_clean_flags(git)

    sub.add_parser("query", parents=[common], help="Show cache folder sizes")

    wp = sub.add_parser("wipe", parents=[common], help="Remove a whole cache folder")
    wp.add_argument("target", choices=sorted(FOLDER_NAMES))

    fr = sub.add_parser("force-remove", parents=[common], help="Remove all cached crates without classifying")
    fr.add_argument("--registry", action="store_true")
    fr.add_argument("--git", action="store_true")
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return _run(args)
    except CargoTrimConfigError as e:
        print(f"error: {e}")
        return 2
    except CacheAccessError as e:
        print(f"error: {e}")
        return 3
    except PermissionError as e:
        print(f"error: {e}")
        return 6


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} (y/N) ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _print_rows(title: str, rows: list[tuple[str, float]]) -> None:
    print(title)
    total = 0.0
    for key, mb in rows:
        total += mb
        print(f"  {key:<48} {mb:>10.3f} MB")
    print(f"  {len(rows)} crates, {total:.3f} MB total")


def _print_result(label: str, res: RemovalResult, *, dry_run: bool) -> None:
    verb = "would be removed" if dry_run else "removed"
    print(f"{res.count_removed} {label} {verb}, freeing {res.mb_freed:.3f} MB")
    for key in res.failed:
        print(f"error: failed to remove {key}")


def _snapshot(args: argparse.Namespace, cfg: TrimConfig, paths: CargoPaths) -> CacheSnapshot:
    snap = build_snapshot(
        paths,
        [*cfg.directory, *args.directory],
        include=[*cfg.include, *args.include],
        exclude=[*cfg.exclude, *args.exclude],
    )
    if snap.references.skipped:
        print(f"warning: skipped {snap.references.skipped} tracked project(s) without a readable Cargo.lock")
    if not snap.degenerate and not snap.references.lock_files:
        print("warning: no tracked project has a readable Cargo.lock; every crate is classified as orphan")
    unrecognized = len(snap.registry.unrecognized) + len(snap.git.unrecognized)
    if unrecognized:
        print(f"warning: {unrecognized} unrecognized cache entries were not classified")
    return snap


def _cmd_config(args: argparse.Namespace, cfg: TrimConfig) -> int:
    if args.clear:
        removed = clear_config(args.config_path)
        print("Cleared config file" if removed else "No config file to clear")
        return 0

    new = add_directories(cfg, args.add_directory)
    new = remove_directories(new, args.remove_directory)
    new = add_include(new, args.add_include)
    new = remove_include(new, args.remove_include)
    new = add_exclude(new, args.add_exclude)
    new = remove_exclude(new, args.remove_exclude)
    if new != cfg:
        save_config(new, args.config_path)

    for key in ("directory", "include", "exclude"):
        print(f"{key}:")
        for v in getattr(new, key):
            print(f"  {v}")
    return 0


def _cmd_list(args: argparse.Namespace, snap: CacheSnapshot) -> int:
    wanted = [c for c, flag in (
        ("installed", args.all),
        ("old", args.old),
        ("orphan", args.orphan),
        ("used", args.used),
        ("old_orphan", args.old_orphan),
    ) if flag] or ["installed"]

    status = 0
    for kind in snap.inaccessible:
        print(f"error: {snap.inaccessible[kind]}")
        status = 3
    kinds = [k for k in StorageKind if k not in snap.inaccessible]

    for category in wanted:
        for kind in kinds:
            cls = classify(snap, kind)
            _print_rows(f"{kind.value.upper()} {_CATEGORY_TITLES[category]} CRATES", display_rows(snap, cls.get(category)))
        if snap.degenerate and category in _DEGENERATE_EFFECTS:
            print(_DEGENERATE_WARNING.format(effect=_DEGENERATE_EFFECTS[category]))
    return status


def _print_query(paths: CargoPaths, snap: CacheSnapshot, kinds: list[StorageKind]) -> None:
    sizes = query_folder_sizes(paths)
    groups = {
        StorageKind.REGISTRY: ("registry", ["cache", "index", "src"]),
        StorageKind.GIT: ("git", ["checkouts", "db"]),
    }
    for kind in kinds:
        top, subs = groups[kind]
        if kind in snap.inaccessible:
            print(f"error: {snap.inaccessible[kind]}")
            continue
        count = len(snap.inventory(kind).installed)
        print(f"{f'Total size of {count} {top} crates:':<50} {to_mb(sizes[top]):>10.3f} MB")
        for name in subs:
            print(f"{f'   |-- Size of {top}/{name} folder':<50} {to_mb(sizes[name]):>10.3f} MB")


def _print_top(snap: CacheSnapshot, kind: StorageKind, n: int) -> None:
    roles = (Role.ARCHIVE, Role.SOURCE) if kind is StorageKind.REGISTRY else (Role.CHECKOUT, Role.DB)
    for role in roles:
        rows = [(key, to_mb(nbytes)) for key, nbytes in snap.sizes.top(kind, role, n)]
        _print_rows(f"TOP {n} {kind.value.upper()} {role.value.upper()}", rows)
    rows = [(name, snap.sizes.query_mb(name, kind)) for name, _ in snap.sizes.top_packages(kind, n)]
    _print_rows(f"TOP {n} {kind.value.upper()} PACKAGES (ALL ROLES)", rows)


def _cmd_kind(args: argparse.Namespace, snap: CacheSnapshot, paths: CargoPaths, kind: StorageKind) -> int:
    snap.require(kind)
    dry_run = bool(args.dry_run)
    engine = RemovalEngine(snap, kind)
    ok = True

    if kind is StorageKind.REGISTRY and args.light:
        res = light_cleanup(paths.src_dir, paths.index_dir, dry_run=dry_run)
        print(f"Light cleanup freed {res.mb_freed:.3f} MB" + (" (dry run)" if dry_run else ""))
        if not res.ok:
            print("error: failed to delete some folders during light cleanup")
            ok = False

    if args.top is not None:
        _print_top(snap, kind, args.top)

    if args.query:
        _print_query(paths, snap, [kind])

    for category, flag, label in (
        ("old", args.old, "old crates"),
        ("old_orphan", args.old_orphan, "old+orphan crates"),
        ("orphan", args.orphan, "orphan crates"),
        ("installed", args.all, "crates"),
    ):
        if not flag:
            continue
        if snap.degenerate and category in _CLEAN_EFFECTS:
            print(_DEGENERATE_WARNING.format(effect=_CLEAN_EFFECTS[category]))
            if not (dry_run or args.yes) and not _confirm("Do you want to continue?"):
                continue
        res = engine.remove_category(category, dry_run=dry_run)
        _print_result(f"{kind.value} {label}", res, dry_run=dry_run)
        ok = ok and res.ok

    if args.remove:
        res = engine.remove_crates(args.remove, dry_run=dry_run)
        _print_result(f"{kind.value} crates", res, dry_run=dry_run)
        ok = ok and res.ok

    return 0 if ok else 1


def _run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config_path)
    paths = CargoPaths.from_env()

    if args.cmd == "init":
        target = args.path or Path.cwd()
        new = add_directories(cfg, [target])
        written = save_config(new, args.config_path)
        print(f"Tracking {Path(target).expanduser().resolve()} (config: {written})")
        return 0

    if args.cmd == "config":
        return _cmd_config(args, cfg)

    if args.cmd == "wipe":
        res = wipe(paths, args.target, dry_run=bool(args.dry_run))
        _print_result(f"{args.target} folder", res, dry_run=bool(args.dry_run))
        return 0 if res.ok else 1

    if args.cmd == "force-remove":
        kinds = [k for k, flag in ((StorageKind.REGISTRY, args.registry), (StorageKind.GIT, args.git)) if flag]
        res = force_remove(paths, kinds or list(StorageKind), dry_run=bool(args.dry_run))
        _print_result("cache folders", res, dry_run=bool(args.dry_run))
        return 0 if res.ok else 1

    snap = _snapshot(args, cfg, paths)

    if args.cmd == "list":
        return _cmd_list(args, snap)

    if args.cmd == "query":
        _print_query(paths, snap, list(StorageKind))
        return 3 if snap.inaccessible else 0

    if args.cmd == "registry":
        return _cmd_kind(args, snap, paths, StorageKind.REGISTRY)

    if args.cmd == "git":
        return _cmd_kind(args, snap, paths, StorageKind.GIT)

    raise AssertionError(f"unhandled cmd: {args.cmd}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
