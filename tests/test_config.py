from __future__ import annotations

from pathlib import Path

import pytest

from cargo_trim.config import (
    TrimConfig,
    add_directories,
    add_exclude,
    add_include,
    clear_config,
    load_config,
    remove_directories,
    remove_include,
    render_config,
    save_config,
)
from cargo_trim.errors import ConfigParseError, ConfigValidationError


def test_missing_config_is_empty(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "absent.toml")
    assert cfg == TrimConfig()
    assert cfg.directory == ()


def test_save_then_load(tmp_path: Path) -> None:
    p = tmp_path / "conf" / "cargo_trim_config.toml"
    proj = tmp_path / "proj"
    proj.mkdir()

    cfg = add_directories(TrimConfig(), [proj, proj])
    cfg = add_include(cfg, ["serde"])
    cfg = add_exclude(cfg, ["tokio"])
    save_config(cfg, p)

    assert p.read_text(encoding="utf-8") == (
        f'directory = ["{proj.resolve()}"]\n'
        'include = ["serde"]\n'
        'exclude = ["tokio"]\n'
    )
    assert load_config(p) == cfg


def test_remove_helpers() -> None:
    cfg = TrimConfig(directory=("/a", "/b"), include=("x", "y"))
    assert remove_directories(cfg, ["/a"]).directory == ("/b",)
    assert remove_include(cfg, ["x", "zzz"]).include == ("y",)


def test_unknown_keys_rejected(tmp_path: Path) -> None:
    p = tmp_path / "c.toml"
    p.write_text('directory = []\nignore = ["x"]\n', encoding="utf-8")
    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(p)
    assert str(excinfo.value) == f"Invalid config in {p}: unknown keys: ignore"


def test_wrong_type_rejected(tmp_path: Path) -> None:
    p = tmp_path / "c.toml"
    p.write_text('include = "serde"\n', encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        load_config(p)


def test_invalid_toml_reports_location(tmp_path: Path) -> None:
    p = tmp_path / "c.toml"
    p.write_text("directory = [\n", encoding="utf-8")
    with pytest.raises(ConfigParseError) as excinfo:
        load_config(p)
    assert excinfo.value.path == p


def test_clear_config(tmp_path: Path) -> None:
    p = tmp_path / "c.toml"
    save_config(TrimConfig(), p)
    assert render_config(TrimConfig()) == "directory = []\ninclude = []\nexclude = []\n"
    assert clear_config(p) is True
    assert clear_config(p) is False
