"""Data models for dependency resolution."""

from __future__ import annotations

from dataclasses import dataclass, field

from ctxpack.packs.models import Pack
from ctxpack.packs.version import Version, VersionRange

ROOT = "<root>"


@dataclass(frozen=True)
class ConstraintRecord:
    """One constraint on an identity, with the chain of packs that imposed it."""

    target: str
    range: VersionRange
    source: str = ROOT  # Pack ref ("org/name@1.2.3") or ROOT
    optional: bool = False
    chain: tuple[str, ...] = ()  # Pack refs from a root down to `source`

    def describe(self) -> str:
        optional = " (optional)" if self.optional else ""
        via = " -> ".join(self.chain) if self.chain else ROOT
        return f"{self.target} {self.range}{optional}  required by {via}"


@dataclass(frozen=True)
class DroppedConstraint:
    """An optional dependency left out of the resolution."""

    record: ConstraintRecord
    reason: str  # "missing" or "unsatisfiable"


@dataclass(frozen=True)
class ResolutionResult:
    """One chosen version per pack identity. Immutable."""

    selected: tuple[Pack, ...]
    order: tuple[str, ...]  # Dependencies before dependents
    edges: tuple[tuple[str, str, bool], ...] = ()  # (from, to, optional)
    dropped: tuple[DroppedConstraint, ...] = ()
    roots: tuple[str, ...] = ()
    digest: str = ""
    _index: dict[str, Pack] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update({p.identity: p for p in self.selected})

    def __contains__(self, identity: str) -> bool:
        return identity in self._index

    def __len__(self) -> int:
        return len(self.selected)

    def get(self, identity: str) -> Pack | None:
        return self._index.get(identity)

    def versions(self) -> dict[str, Version]:
        return {p.identity: p.version for p in self.selected}

    def refs(self) -> list[tuple[str, str]]:
        """(identity, version) pairs, the granularity of cache invalidation."""
        return [(p.identity, str(p.version)) for p in self.selected]

    def ordered_packs(self) -> list[Pack]:
        return [self._index[identity] for identity in self.order]

    def summary(self) -> str:
        lines = [f"Resolved {len(self.selected)} pack(s) [{self.digest[:12]}]"]
        for pack in self.ordered_packs():
            lines.append(f"  {pack.ref} ({pack.scope.value}, #{pack.install_order})")
        for drop in self.dropped:
            lines.append(f"  dropped optional {drop.record.describe()} ({drop.reason})")
        return "\n".join(lines)
