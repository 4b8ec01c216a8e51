from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class CargoTrimError(Exception):
    """Base exception for cargo-trim errors."""


class CargoTrimConfigError(CargoTrimError):
    """Base exception for config parsing/validation errors."""


@dataclass(frozen=True)
class ConfigParseError(CargoTrimConfigError):
    """Raised when the config TOML file cannot be parsed."""

    path: Path
    message: str
    lineno: int | None = None
    colno: int | None = None

    def __str__(self) -> str:
        loc = ""
        if self.lineno is not None and self.colno is not None:
            loc = f" (line {self.lineno}, column {self.colno})"
        return f"Invalid TOML in {self.path}: {self.message}{loc}"


@dataclass(frozen=True)
class ConfigValidationError(CargoTrimConfigError):
    """Raised when a parsed config file does not match the expected schema."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Invalid config in {self.path}: {self.message}"


@dataclass(frozen=True)
class CacheAccessError(CargoTrimError):
    """Raised when a base cache directory exists but cannot be listed."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Cannot access cache directory {self.path}: {self.message}"
