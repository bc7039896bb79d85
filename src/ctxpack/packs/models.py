"""Data models for installed packs."""

from __future__ import annotations

import hashlib
import json
import re
from enum import Enum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from ctxpack.packs.version import Version, VersionRange, parse_range, parse_version

_IDENTITY_RE = re.compile(r"^@?([A-Za-z0-9][A-Za-z0-9._-]*)/([A-Za-z0-9][A-Za-z0-9._-]*)$")


def parse_identity(raw: str) -> str:
    """Normalize ``org/name`` (a leading ``@`` is accepted and dropped)."""
    match = _IDENTITY_RE.match(raw.strip()) if isinstance(raw, str) else None
    if not match:
        raise ValueError(f"Invalid pack identity {raw!r} (expected 'org/name')")
    return f"{match.group(1)}/{match.group(2)}"


def canonical_digest(payload: object) -> str:
    """SHA-256 over the canonical JSON form of `payload`."""
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ScopeLayer(str, Enum):
    """Where a pack is mounted. Later layers outrank earlier ones."""

    GLOBAL = "global"
    PROJECT = "project"
    LOCAL = "local"

    @property
    def rank(self) -> int:
        return _SCOPE_RANK[self]

    @classmethod
    def ordered(cls) -> list[ScopeLayer]:
        return sorted(cls, key=lambda s: s.rank)


_SCOPE_RANK = {ScopeLayer.GLOBAL: 0, ScopeLayer.PROJECT: 1, ScopeLayer.LOCAL: 2}


class ContentKind(str, Enum):
    RULE = "rule"
    TEMPLATE = "template"
    KNOWLEDGE = "knowledge"


class Directive(str, Enum):
    """How a unit combines with same-key units from lower scopes."""

    EXTEND = "extend"  # Append to what lower scopes contributed
    OVERRIDE = "override"  # Supersede lower scopes
    REPLACE = "replace"  # Supersede lower scopes and close the key


class DependencyConstraint(BaseModel):
    """A dependency of one pack on a range of versions of another."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    target: str
    range: VersionRange = Field(default_factory=VersionRange)
    optional: bool = False

    @field_validator("target", mode="before")
    @classmethod
    def _check_target(cls, value):
        return parse_identity(value)

    @field_validator("range", mode="before")
    @classmethod
    def _parse_range(cls, value):
        return parse_range(value)

    @field_serializer("range")
    def _dump_range(self, value: VersionRange) -> str:
        return value.text

    def __str__(self) -> str:
        suffix = " (optional)" if self.optional else ""
        return f"{self.target} {self.range}{suffix}"


class ContentUnit(BaseModel):
    """One rule, generator template or knowledge document inside a pack."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)  # Conflict key, unique within its pack
    kind: ContentKind = ContentKind.RULE
    directive: Directive = Directive.EXTEND
    required: bool = False
    body: str = ""
    size: int = Field(default=0, ge=0)  # Bytes; derived from body when omitted
    title: str = ""

    @model_validator(mode="before")
    @classmethod
    def _derive_size(cls, data):
        if isinstance(data, dict) and data.get("size") is None:
            data = dict(data)
            data["size"] = len(str(data.get("body", "")).encode("utf-8"))
        return data

    def fingerprint(self) -> dict:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "directive": self.directive.value,
            "required": self.required,
            "size": self.size,
            "body": hashlib.sha256(self.body.encode("utf-8")).hexdigest(),
        }


class Pack(BaseModel):
    """An installed pack. Immutable; upgrades install a new record."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    org: str
    name: str
    version: Version
    scope: ScopeLayer = ScopeLayer.PROJECT
    install_order: int = 0
    direct: bool = True
    description: str = ""
    dependencies: tuple[DependencyConstraint, ...] = ()
    units: tuple[ContentUnit, ...] = ()
    content_digest: str = ""

    @field_validator("version", mode="before")
    @classmethod
    def _parse_version(cls, value):
        return parse_version(value)

    @field_serializer("version")
    def _dump_version(self, value: Version) -> str:
        return str(value)

    @model_validator(mode="after")
    def _check_units(self) -> Pack:
        parse_identity(f"{self.org}/{self.name}")
        seen: set[str] = set()
        for unit in self.units:
            if unit.key in seen:
                raise ValueError(f"Duplicate content key '{unit.key}' in {self.identity}")
            seen.add(unit.key)
        if not self.content_digest:
            digest = canonical_digest([u.fingerprint() for u in self.units])
            object.__setattr__(self, "content_digest", digest)
        return self

    @property
    def identity(self) -> str:
        return f"{self.org}/{self.name}"

    @property
    def ref(self) -> str:
        return f"{self.identity}@{self.version}"

    @property
    def total_size(self) -> int:
        return sum(u.size for u in self.units)

    def unit_id(self, unit: ContentUnit) -> str:
        return f"{self.identity}#{unit.key}"

    def fingerprint(self) -> dict:
        """Everything about this record that can change assembly output."""
        return {
            "identity": self.identity,
            "version": str(self.version),
            "scope": self.scope.value,
            "install_order": self.install_order,
            "content_digest": self.content_digest,
            "dependencies": sorted(
                [dep.target, str(dep.range), dep.optional] for dep in self.dependencies
            ),
        }

    @classmethod
    def create(cls, identity: str, version: str | Version, **kwargs) -> Pack:
        """Build a pack from an ``org/name`` identity."""
        org, name = parse_identity(identity).split("/", 1)
        return cls(org=org, name=name, version=version, **kwargs)
