"""Semantic versions and version ranges for pack dependencies.

Ranges are conjunctions of comparators. Intersecting two ranges simply
concatenates their comparators, so the intersection of every constraint
on an identity is itself a range that can be tested against candidates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable

from ctxpack.exceptions import VersionError

_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_NUMERIC_RE = re.compile(r"0|[1-9]\d*")

_OPERATORS = ("<=", ">=", "==", "<", ">", "=")


@total_ordering
@dataclass(frozen=True)
class Version:
    """A semantic version. Build metadata is kept but ignored for ordering."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def _prerelease_key(self) -> tuple:
        # Numeric identifiers sort before alphanumeric ones.
        return tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease
        )

    def _cmp_key(self) -> tuple:
        # A release outranks any of its prereleases.
        release_flag = 0 if self.prerelease else 1
        return (self.major, self.minor, self.patch, release_flag, self._prerelease_key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp_key() == other._cmp_key()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp_key() < other._cmp_key()

    def __hash__(self) -> int:
        return hash(self._cmp_key())

    @classmethod
    def parse(cls, raw: str | Version) -> Version:
        return parse_version(raw)


def parse_version(raw: str | Version) -> Version:
    """Parse a version string.

    Accepts ``1``, ``1.2``, ``1.2.3``, an optional leading ``v`` and the
    usual ``-prerelease`` / ``+build`` suffixes. Missing components are
    filled with zeros.
    """
    if isinstance(raw, Version):
        return raw
    if not isinstance(raw, str):
        raise VersionError(f"Version must be a string, got {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise VersionError("Version string cannot be empty")
    if text[0] == "v" and len(text) > 1 and text[1].isdigit():
        text = text[1:]

    cut = len(text)
    for sep in ("-", "+"):
        idx = text.find(sep)
        if idx != -1:
            cut = min(cut, idx)
    core, suffix = text[:cut], text[cut:]

    parts = core.split(".")
    if not 1 <= len(parts) <= 3 or any(not _NUMERIC_RE.fullmatch(p) for p in parts):
        raise VersionError(f"Invalid version {raw!r}")
    while len(parts) < 3:
        parts.append("0")

    match = _SEMVER_RE.match(".".join(parts) + suffix)
    if not match:
        raise VersionError(f"Invalid version {raw!r}")

    prerelease = match.group("prerelease")
    build = match.group("build")
    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=tuple(prerelease.split(".")) if prerelease else (),
        build=tuple(build.split(".")) if build else (),
    )


@dataclass(frozen=True)
class Comparator:
    operator: str
    version: Version

    def allows(self, version: Version) -> bool:
        if self.operator == "==":
            return version == self.version
        if self.operator == ">=":
            return version >= self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == "<":
            return version < self.version
        raise VersionError(f"Unknown operator {self.operator!r}")

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


@dataclass(frozen=True)
class VersionRange:
    """A conjunction of comparators. No comparators means any version."""

    comparators: tuple[Comparator, ...] = ()
    text: str = "*"

    @property
    def is_any(self) -> bool:
        return not self.comparators

    def allows(self, version: Version) -> bool:
        return all(c.allows(version) for c in self.comparators)

    def intersect(self, other: VersionRange) -> VersionRange:
        """Range admitting exactly the versions both ranges admit."""
        if self.is_any:
            return other
        if other.is_any:
            return self
        comparators = self.comparators + tuple(
            c for c in other.comparators if c not in self.comparators
        )
        return VersionRange(comparators, f"{self.text} {other.text}")

    def best_of(self, versions: Iterable[Version]) -> Version | None:
        """Greatest version admitted by this range, or None."""
        best = None
        for version in versions:
            if self.allows(version) and (best is None or version > best):
                best = version
        return best

    def __str__(self) -> str:
        return self.text

    @classmethod
    def parse(cls, raw: str | VersionRange | None) -> VersionRange:
        return parse_range(raw)


ANY = VersionRange()


def _caret(version: Version) -> tuple[Comparator, Comparator]:
    if version.major > 0:
        upper = Version(version.major + 1)
    elif version.minor > 0:
        upper = Version(0, version.minor + 1)
    else:
        upper = Version(0, 0, version.patch + 1)
    return Comparator(">=", version), Comparator("<", upper)


def _tilde(version: Version, explicit_parts: int) -> tuple[Comparator, Comparator]:
    if explicit_parts == 1:
        upper = Version(version.major + 1)
    else:
        upper = Version(version.major, version.minor + 1)
    return Comparator(">=", version), Comparator("<", upper)


def parse_range(raw: str | VersionRange | None) -> VersionRange:
    """Parse a range expression.

    Forms: ``*`` or empty (any), ``1.2.3`` (exact), ``>=1.2 <2``,
    ``^1.2.3``, ``~1.2.3`` and the hyphen range ``1.2.3 - 2.0.0``.
    """
    if isinstance(raw, VersionRange):
        return raw
    if raw is None:
        return ANY
    if not isinstance(raw, str):
        raise VersionError(f"Range must be a string, got {type(raw).__name__}")

    text = raw.strip()
    if not text or text == "*":
        return ANY

    hyphen = re.match(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$", text)
    if hyphen:
        low = parse_version(hyphen.group("low"))
        high = parse_version(hyphen.group("high"))
        if high < low:
            raise VersionError(f"Invalid hyphen range {raw!r}: upper < lower")
        return VersionRange((Comparator(">=", low), Comparator("<=", high)), text)

    comparators: list[Comparator] = []
    for token in text.split():
        if token == "*":
            continue
        if token[0] in "^~":
            if len(token) == 1:
                raise VersionError(f"Missing version after {token!r} in {raw!r}")
            version = parse_version(token[1:])
            if token[0] == "^":
                comparators.extend(_caret(version))
            else:
                explicit = len(token[1:].lstrip("v").split("-")[0].split("+")[0].split("."))
                comparators.extend(_tilde(version, explicit))
            continue

        for op in _OPERATORS:
            if token.startswith(op):
                rest = token[len(op):]
                if not rest:
                    raise VersionError(f"Missing version after {op!r} in {raw!r}")
                comparators.append(Comparator("==" if op == "=" else op, parse_version(rest)))
                break
        else:
            comparators.append(Comparator("==", parse_version(token)))

    return VersionRange(tuple(comparators), text)
