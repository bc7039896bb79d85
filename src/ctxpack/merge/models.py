"""Data models for hierarchical merging."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ctxpack.packs.models import ContentKind, ContentUnit, Directive, Pack, ScopeLayer


class MergedUnit(BaseModel):
    """A content unit that survived merging, with its provenance."""

    model_config = ConfigDict(frozen=True)

    unit_id: str  # "org/name#key"
    key: str
    pack: str
    version: str
    scope: ScopeLayer
    install_order: int
    kind: ContentKind
    directive: Directive
    required: bool = False
    size: int = 0
    title: str = ""
    body: str = ""

    @classmethod
    def from_unit(cls, pack: Pack, unit: ContentUnit) -> MergedUnit:
        return cls(
            unit_id=pack.unit_id(unit),
            key=unit.key,
            pack=pack.identity,
            version=str(pack.version),
            scope=pack.scope,
            install_order=pack.install_order,
            kind=unit.kind,
            directive=unit.directive,
            required=unit.required,
            size=unit.size,
            title=unit.title,
            body=unit.body,
        )


class MergeConflict(BaseModel):
    """Two or more superseding units for one key at the same scope."""

    model_config = ConfigDict(frozen=True)

    key: str
    scope: ScopeLayer
    packs: list[str]  # Identities, oldest installation first
    resolved_by: str = ""  # Identity kept in best-effort mode

    @property
    def resolved(self) -> bool:
        return bool(self.resolved_by)

    def describe(self) -> str:
        text = f"'{self.key}' at {self.scope.value} scope: {', '.join(self.packs)}"
        if self.resolved:
            text += f" (kept {self.resolved_by} by install order)"
        return text


class DiscardedUnit(BaseModel):
    """A unit removed during merging and why."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    key: str
    scope: ScopeLayer
    reason: str  # "overridden", "closed" or "conflict"


class MergeResult(BaseModel):
    """Precedence-ordered units plus everything the merge had to report."""

    model_config = ConfigDict(frozen=True)

    units: tuple[MergedUnit, ...] = ()
    conflicts: tuple[MergeConflict, ...] = ()
    discarded: tuple[DiscardedUnit, ...] = ()
    scopes: tuple[ScopeLayer, ...] = Field(default_factory=lambda: tuple(ScopeLayer.ordered()))

    @property
    def unresolved(self) -> list[MergeConflict]:
        return [c for c in self.conflicts if not c.resolved]

    def for_key(self, key: str) -> list[MergedUnit]:
        return [u for u in self.units if u.key == key]
