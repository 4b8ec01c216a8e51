from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


CONFIG_FILE_NAME = "cargo_trim_config.toml"

FOLDER_NAMES = ("registry", "cache", "index", "src", "git", "checkouts", "db")


def cargo_home() -> Path:
    override = os.environ.get("CARGO_HOME")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home().resolve() / ".cargo"


def config_path() -> Path:
    override = os.environ.get("CARGO_TRIM_CONFIG")
    if override:
        return Path(override).expanduser().resolve()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base.resolve() / CONFIG_FILE_NAME


@dataclass(frozen=True)
class CargoPaths:
    """Resolved cache directories under a Cargo home.

    None of these are required to exist; absent directories scan as empty.
    """

    home: Path

    @classmethod
    def from_env(cls) -> "CargoPaths":
        return cls(home=cargo_home())

    @property
    def registry_dir(self) -> Path:
        return self.home / "registry"

    @property
    def cache_dir(self) -> Path:
        """Compressed `.crate` archives, one subdirectory per index mirror."""

        return self.registry_dir / "cache"

    @property
    def src_dir(self) -> Path:
        """Extracted crate sources, one subdirectory per index mirror."""

        return self.registry_dir / "src"

    @property
    def index_dir(self) -> Path:
        return self.registry_dir / "index"

    @property
    def git_dir(self) -> Path:
        return self.home / "git"

    @property
    def checkout_dir(self) -> Path:
        return self.git_dir / "checkouts"

    @property
    def db_dir(self) -> Path:
        return self.git_dir / "db"

    def folders(self) -> dict[str, Path]:
        """Named cache folders, as accepted by `wipe` and reported by `query`."""

        return {
            "registry": self.registry_dir,
            "cache": self.cache_dir,
            "index": self.index_dir,
            "src": self.src_dir,
            "git": self.git_dir,
            "checkouts": self.checkout_dir,
            "db": self.db_dir,
        }
