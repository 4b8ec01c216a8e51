from __future__ import annotations

from pathlib import Path

import pytest

from _cache import CacheBuilder
from cargo_trim.paths import CargoPaths


@pytest.fixture
def cargo_paths(tmp_path: Path, monkeypatch) -> CargoPaths:
    home = tmp_path / "cargo-home"
    home.mkdir()
    monkeypatch.setenv("CARGO_HOME", str(home))
    return CargoPaths(home=home.resolve())


@pytest.fixture
def cache(cargo_paths: CargoPaths) -> CacheBuilder:
    return CacheBuilder(cargo_paths)
