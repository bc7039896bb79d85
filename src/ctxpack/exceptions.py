"""Custom exceptions for ctxpack.

Every error carries structured fields (a kind plus the offending
identities) so callers can render their own diagnostics; ``str(error)``
is only a convenience.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ctxpack.merge.models import MergeConflict
    from ctxpack.resolver.models import ConstraintRecord


class CtxPackError(Exception):
    """Base exception for all ctxpack errors."""


class ConfigError(CtxPackError):
    """Configuration-related errors."""


class VersionError(CtxPackError, ValueError):
    """Malformed version or version range text."""


class StoreError(CtxPackError):
    """Pack store misuse (removing unknown packs, duplicate unit keys...)."""


class ManifestError(CtxPackError):
    """A pack manifest could not be read or is invalid."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid pack manifest {path}: {reason}")


class ResolutionConflict(CtxPackError):
    """No consistent resolution exists for the requested packs.

    kind is one of ``unsatisfiable``, ``missing``, ``cycle`` or
    ``non_convergent``.
    """

    def __init__(
        self,
        kind: str,
        identity: str = "",
        constraints: list[ConstraintRecord] | None = None,
        cycle: list[str] | None = None,
        available: list[str] | None = None,
    ):
        self.kind = kind
        self.identity = identity
        self.constraints = list(constraints or [])
        self.cycle = list(cycle or [])
        self.available = list(available or [])
        super().__init__(self._describe())

    @property
    def identities(self) -> list[str]:
        """Every pack identity involved in the conflict."""
        found: list[str] = []
        for name in [self.identity, *self.cycle]:
            if name and name not in found:
                found.append(name)
        for record in self.constraints:
            for name in record.chain:
                base = name.split("@", 1)[0]
                if base and base not in found:
                    found.append(base)
        return found

    def _describe(self) -> str:
        if self.kind == "cycle":
            return "Dependency cycle: " + " -> ".join(self.cycle)
        if self.kind == "non_convergent":
            return f"Resolution did not converge (last changed: {self.identity})"
        lines = []
        if self.kind == "missing":
            lines.append(f"Required pack '{self.identity}' is not installed")
        else:
            lines.append(f"No version of '{self.identity}' satisfies all constraints")
            if self.available:
                lines.append(f"  available: {', '.join(self.available)}")
        for record in self.constraints:
            lines.append(f"  {record.describe()}")
        return "\n".join(lines)


class MergeConflictError(CtxPackError):
    """Same-scope override collisions blocked the assembly."""

    def __init__(self, conflicts: list[MergeConflict]):
        self.conflicts = list(conflicts)
        keys = ", ".join(c.key for c in self.conflicts)
        super().__init__(
            f"{len(self.conflicts)} unresolved override conflict(s): {keys}"
        )

    @property
    def identities(self) -> list[str]:
        found: list[str] = []
        for conflict in self.conflicts:
            for name in conflict.packs:
                if name not in found:
                    found.append(name)
        return found


class OverBudgetRequired(CtxPackError):
    """Required content alone does not fit in the budget ceiling."""

    def __init__(self, required_bytes: int, budget: int, unit_ids: list[str]):
        self.required_bytes = required_bytes
        self.budget = budget
        self.unit_ids = list(unit_ids)
        super().__init__(
            f"Required content needs {required_bytes:,} bytes but the budget is "
            f"{budget:,} ({len(self.unit_ids)} required unit(s))"
        )

    @property
    def identities(self) -> list[str]:
        found: list[str] = []
        for unit_id in self.unit_ids:
            name = unit_id.split("#", 1)[0]
            if name not in found:
                found.append(name)
        return found
