"""Data models for budgeted context assembly."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ctxpack.merge.models import DiscardedUnit, MergeConflict, MergedUnit
from ctxpack.packs.models import ScopeLayer, canonical_digest


class AllocationPolicy(str, Enum):
    """How ranked optional items are accepted into the budget."""

    FIRST_FIT = "first_fit"  # Accept every ranked item that still fits
    PREFIX = "prefix"  # Stop at the first ranked item that does not fit


class AssemblyQuery(BaseModel):
    """Everything a caller supplies for one assembly."""

    model_config = ConfigDict(frozen=True)

    budget: int = Field(gt=0)
    scores: dict[str, float] = Field(default_factory=dict)  # unit id -> relevance
    scopes: tuple[ScopeLayer, ...] = Field(default_factory=lambda: tuple(ScopeLayer.ordered()))
    roots: tuple[str, ...] | None = None
    best_effort: bool = False
    policy: AllocationPolicy = AllocationPolicy.FIRST_FIT

    @field_validator("scopes", mode="before")
    @classmethod
    def _order_scopes(cls, value):
        scopes = {ScopeLayer(s) for s in value}
        return tuple(s for s in ScopeLayer.ordered() if s in scopes)

    def scope_digest(self) -> str:
        return canonical_digest({
            "scopes": [s.value for s in self.scopes],
            "roots": sorted(self.roots) if self.roots is not None else None,
            "best_effort": self.best_effort,
            "policy": self.policy.value,
        })

    def scores_digest(self) -> str:
        return canonical_digest(sorted((k, repr(float(v))) for k, v in self.scores.items()))


class ContextItem(MergedUnit):
    """A merged unit together with the relevance it was ranked by."""

    relevance: float = 0.0


class AllocationResult(BaseModel):
    """Output of the budget allocator."""

    model_config = ConfigDict(frozen=True)

    selected: tuple[ContextItem, ...] = ()  # In merged order
    dropped: tuple[ContextItem, ...] = ()  # In rank order
    bytes_used: int = 0
    budget: int = 0

    @property
    def selected_ids(self) -> list[str]:
        return [item.unit_id for item in self.selected]


class AssemblyOutput(BaseModel):
    """The assembled context for one query. Frozen; safe to share."""

    model_config = ConfigDict(frozen=True)

    items: tuple[ContextItem, ...] = ()
    dropped: tuple[str, ...] = ()  # Unit ids left out by the budget
    discarded: tuple[DiscardedUnit, ...] = ()  # Units removed by merging
    conflicts: tuple[MergeConflict, ...] = ()
    packs: tuple[str, ...] = ()  # Resolved pack refs, dependency order
    dropped_dependencies: tuple[str, ...] = ()
    bytes_used: int = 0
    budget: int = 0
    resolution_digest: str = ""
    cache_key: str = ""

    @property
    def budget_used_pct(self) -> float:
        return round(self.bytes_used / max(self.budget, 1) * 100, 1)

    def render(self, include_metadata: bool = True) -> str:
        """Render the context document handed to the agent runtime."""
        sections: list[str] = []

        if include_metadata:
            sections.append("# Agent Context")
            sections.append(
                f"# {len(self.items)} unit(s) from {len(self.packs)} pack(s) "
                f"({self.bytes_used:,} bytes, {self.budget_used_pct:.0f}% of budget)"
            )
            sections.append("")

        for item in self.items:
            heading = item.title or item.key
            sections.append(f"## {heading}")
            if include_metadata:
                sections.append(
                    f"<!-- {item.kind.value} from {item.pack}@{item.version} "
                    f"[{item.scope.value}, {item.directive.value}] -->"
                )
            sections.append(item.body.rstrip("\n"))
            sections.append("")

        return "\n".join(sections)

    def summary(self) -> str:
        """Human-readable summary of what's in the assembly."""
        lines = [
            f"Packs: {', '.join(self.packs) or '(none)'}",
            f"Bytes: {self.bytes_used:,} / {self.budget:,} ({self.budget_used_pct:.0f}%)",
            f"Units: {len(self.items)} included, {len(self.dropped)} dropped by budget, "
            f"{len(self.discarded)} discarded by merge",
            "",
            "Included units:",
        ]
        for item in self.items:
            marker = "!" if item.required else ">"
            lines.append(
                f"  {marker} {item.unit_id} ({item.kind.value}, {item.scope.value}) "
                f"{item.size}B relevance={item.relevance:.2f}"
            )
        if self.dropped:
            lines.append("Dropped by budget:")
            lines.extend(f"    {unit_id}" for unit_id in self.dropped)
        for conflict in self.conflicts:
            lines.append(f"Conflict: {conflict.describe()}")
        for dep in self.dropped_dependencies:
            lines.append(f"Dropped optional dependency: {dep}")
        return "\n".join(lines)
