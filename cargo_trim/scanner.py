from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CacheAccessError
from .models import ArtifactIdentity, ArtifactLocation, Role, StorageKind
from .paths import CargoPaths
from .resolver import Parsed, parse_artifact_name
from .sizes import SizeIndex, dir_size


logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".crate"

# `serde-1a2b3c4d5e6f7a8b`: repository name plus Cargo's URL hash.
_GIT_FINGERPRINT_RE = re.compile(r"^(?P<repo>.+)-(?P<hash>[0-9a-f]{8,})$")


@dataclass(frozen=True)
class KindInventory:
    """Installed artifacts of one storage kind and where they live."""

    kind: StorageKind
    installed: frozenset[ArtifactIdentity] = frozenset()
    locations: dict[ArtifactIdentity, ArtifactLocation] = field(default_factory=dict)
    unrecognized: tuple[Path, ...] = ()
    # Git only: shared bare repositories by repository name.
    db: dict[str, tuple[Path, ...]] = field(default_factory=dict)

    def by_key(self) -> dict[str, ArtifactIdentity]:
        return {ident.key: ident for ident in self.installed}


def _list_root(root: Path) -> list[Path]:
    """Children of a base cache dir. Absent is empty; unlistable is fatal for the operation."""

    if not root.exists():
        return []
    try:
        return sorted(root.iterdir())
    except OSError as e:
        raise CacheAccessError(path=root, message=str(e)) from e


def _list_entry(path: Path) -> list[Path]:
    try:
        return sorted(path.iterdir())
    except OSError as e:
        logger.warning("skipping unreadable entry %s: %s", path, e)
        return []


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError as e:
        logger.warning("unable to stat %s: %s", path, e)
        return 0.0


class _LocationBuilder:
    def __init__(self) -> None:
        self.paths: dict[ArtifactIdentity, dict[Role, list[Path]]] = {}
        self.modified: dict[ArtifactIdentity, float] = {}
        self.fingerprint: dict[ArtifactIdentity, str] = {}

    def add(self, ident: ArtifactIdentity, role: Role, path: Path, *, modified: float = 0.0) -> None:
        self.paths.setdefault(ident, {}).setdefault(role, []).append(path)
        self.modified[ident] = max(self.modified.get(ident, 0.0), modified)

    def build(self) -> dict[ArtifactIdentity, ArtifactLocation]:
        return {
            ident: ArtifactLocation(
                paths={role: tuple(ps) for role, ps in roles.items()},
                modified=self.modified.get(ident, 0.0),
                fingerprint=self.fingerprint.get(ident),
            )
            for ident, roles in self.paths.items()
        }


def scan_registry(cache_dir: Path, src_dir: Path, sizes: SizeIndex) -> KindInventory:
    """Inventory registry crates from `cache/<mirror>/*.crate` and `src/<mirror>/*/`.

    The same crate found under several mirrors is one artifact with several
    paths; its sizes accumulate in `sizes`.
    """

    builder = _LocationBuilder()
    unrecognized: list[Path] = []

    for mirror in _list_root(cache_dir):
        if not mirror.is_dir():
            continue
        for entry in _list_entry(mirror):
            if not entry.name.endswith(ARCHIVE_SUFFIX):
                unrecognized.append(entry)
                continue
            parsed = parse_artifact_name(entry.name[: -len(ARCHIVE_SUFFIX)])
            if not isinstance(parsed, Parsed):
                logger.debug("unrecognized registry archive %s", entry)
                unrecognized.append(entry)
                continue
            ident = ArtifactIdentity(parsed.name, parsed.version, StorageKind.REGISTRY)
            builder.add(ident, Role.ARCHIVE, entry)
            sizes.record(ident.key, StorageKind.REGISTRY, Role.ARCHIVE, dir_size(entry), package=parsed.name)

    for mirror in _list_root(src_dir):
        if not mirror.is_dir():
            continue
        for entry in _list_entry(mirror):
            parsed = parse_artifact_name(entry.name)
            if not entry.is_dir() or not isinstance(parsed, Parsed):
                logger.debug("unrecognized registry source %s", entry)
                unrecognized.append(entry)
                continue
            ident = ArtifactIdentity(parsed.name, parsed.version, StorageKind.REGISTRY)
            builder.add(ident, Role.SOURCE, entry)
            sizes.record(ident.key, StorageKind.REGISTRY, Role.SOURCE, dir_size(entry), package=parsed.name)

    locations = builder.build()
    return KindInventory(
        kind=StorageKind.REGISTRY,
        installed=frozenset(locations),
        locations=locations,
        unrecognized=tuple(unrecognized),
    )


def scan_git(checkout_dir: Path, db_dir: Path, sizes: SizeIndex) -> KindInventory:
    """Inventory git crates from `checkouts/<repo>-<hash>/<rev>/` and `db/<repo>-<hash>/`.

    Each checked-out revision is one artifact named by repository and revision.
    Bare repositories in `db` are shared by every revision and are recorded per
    repository name only.
    """

    builder = _LocationBuilder()
    unrecognized: list[Path] = []

    for repo_dir in _list_root(checkout_dir):
        m = _GIT_FINGERPRINT_RE.match(repo_dir.name)
        if not repo_dir.is_dir() or m is None:
            unrecognized.append(repo_dir)
            continue
        repo = m.group("repo")
        for rev_dir in _list_entry(repo_dir):
            if not rev_dir.is_dir():
                continue
            ident = ArtifactIdentity(repo, rev_dir.name, StorageKind.GIT)
            builder.add(ident, Role.CHECKOUT, rev_dir, modified=_mtime(rev_dir))
            builder.fingerprint[ident] = repo_dir.name
            sizes.record(ident.key, StorageKind.GIT, Role.CHECKOUT, dir_size(rev_dir), package=repo)

    db: dict[str, list[Path]] = {}
    for repo_dir in _list_root(db_dir):
        m = _GIT_FINGERPRINT_RE.match(repo_dir.name)
        if not repo_dir.is_dir() or m is None:
            unrecognized.append(repo_dir)
            continue
        repo = m.group("repo")
        db.setdefault(repo, []).append(repo_dir)
        sizes.record(repo, StorageKind.GIT, Role.DB, dir_size(repo_dir))

    locations = builder.build()
    return KindInventory(
        kind=StorageKind.GIT,
        installed=frozenset(locations),
        locations=locations,
        unrecognized=tuple(unrecognized),
        db={k: tuple(v) for k, v in db.items()},
    )


def query_folder_sizes(paths: CargoPaths) -> dict[str, int]:
    """Aggregate byte size of each named cache folder."""

    return {name: dir_size(p) for name, p in paths.folders().items()}
