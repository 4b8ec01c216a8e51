from __future__ import annotations

import re
from dataclasses import dataclass


_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True)
class Semver:
    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:  # pragma: no cover
        out = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            out += "-" + ".".join(self.pre)
        if self.build:
            out += "+" + ".".join(self.build)
        return out

    def precedence(self) -> tuple:
        """Sort key following semver precedence.

        A release sorts above any of its pre-releases. Numeric pre-release
        identifiers sort below alphanumeric ones. Build metadata is ignored.
        """

        if not self.pre:
            return (self.major, self.minor, self.patch, 1, ())
        ids = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.pre)
        return (self.major, self.minor, self.patch, 0, ids)


def parse_semver(version: str) -> Semver:
    m = _SEMVER_RE.match(version.strip())
    if m is None:
        raise ValueError(f"invalid semver: {version!r}")
    pre = tuple(m.group(4).split(".")) if m.group(4) else ()
    build = tuple(m.group(5).split(".")) if m.group(5) else ()
    return Semver(int(m.group(1)), int(m.group(2)), int(m.group(3)), pre, build)


def is_semver(version: str) -> bool:
    return _SEMVER_RE.match(version) is not None


def version_sort_key(version: str) -> tuple:
    """Precedence key with the raw string as tie-breaker (e.g. differing build metadata)."""

    return (parse_semver(version).precedence(), version)


@dataclass(frozen=True)
class Parsed:
    name: str
    version: str


@dataclass(frozen=True)
class Unrecognized:
    raw: str


ParsedName = Parsed | Unrecognized


def parse_artifact_name(raw: str) -> ParsedName:
    """Split a `name-version` cache entry name.

    The split point is the right-most hyphen whose suffix is a valid semver, so
    hyphenated names (`windows-sys-0.48.0`) and hyphenated pre-releases
    (`foo-1.0.0-rc-1`) are both handled. Anything else is Unrecognized.
    """

    idx = len(raw)
    while True:
        idx = raw.rfind("-", 0, idx)
        if idx <= 0:
            return Unrecognized(raw=raw)
        suffix = raw[idx + 1 :]
        if is_semver(suffix):
            return Parsed(name=raw[:idx], version=suffix)
