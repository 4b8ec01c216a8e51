from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class StorageKind(str, Enum):
    """Where Cargo fetched an artifact from."""

    REGISTRY = "registry"
    GIT = "git"


class Role(str, Enum):
    """Which on-disk entry a recorded size belongs to."""

    SOURCE = "source"
    ARCHIVE = "archive"
    CHECKOUT = "checkout"
    DB = "db"


# Roles removed per artifact. The git db is shared across revisions and is
# only removed by a wipe or a forced removal.
REMOVABLE_ROLES: dict[StorageKind, tuple[Role, ...]] = {
    StorageKind.REGISTRY: (Role.ARCHIVE, Role.SOURCE),
    StorageKind.GIT: (Role.CHECKOUT,),
}

# Roles summed into a package's total size.
TOTAL_ROLES: dict[StorageKind, tuple[Role, ...]] = {
    StorageKind.REGISTRY: (Role.ARCHIVE, Role.SOURCE),
    StorageKind.GIT: (Role.CHECKOUT, Role.DB),
}


@dataclass(frozen=True)
class ArtifactIdentity:
    package_name: str
    version: str | None
    kind: StorageKind

    @property
    def key(self) -> str:
        """Display key, matching the cache entry name (`serde-1.0.190`)."""

        if self.version is None:
            return self.package_name
        return f"{self.package_name}-{self.version}"


@dataclass(frozen=True)
class ArtifactLocation:
    """Filesystem entries backing one artifact.

    `paths` maps a role to every path found for it (one per index mirror for
    registry artifacts). `modified` is the newest mtime seen, used to order git
    checkouts of the same repository.
    """

    paths: dict[Role, tuple[Path, ...]] = field(default_factory=dict)
    modified: float = 0.0
    fingerprint: str | None = None

    def all_paths(self) -> tuple[Path, ...]:
        out: list[Path] = []
        for role in sorted(self.paths, key=lambda r: r.value):
            out.extend(self.paths[role])
        return tuple(out)


@dataclass(frozen=True)
class ReferenceEntry:
    """One locked dependency from a project's Cargo.lock."""

    name: str
    version: str
    kind: StorageKind
    repo: str | None = None
