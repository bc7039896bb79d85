"""Hierarchical merge of content units across scope layers.

Units are grouped by key and each group is folded from the lowest scope
(global) to the highest (local); packs within one scope are taken in
install order.

  extend    appended to the contributions so far, unless a lower scope
            already overrode the key, in which case it is discarded
  override  discards every lower-scope contribution; extends from the
            same scope are kept after it
  replace   like override, and closes the key: every unit from a higher
            scope is discarded, overrides included

More than one override/replace for a key at the same scope is a conflict.
Strict mode drops the whole group and reports it; best-effort mode keeps
the oldest installation and reports the conflict as resolved.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ctxpack.merge.models import DiscardedUnit, MergeConflict, MergedUnit, MergeResult
from ctxpack.packs.models import Directive, ScopeLayer
from ctxpack.resolver.models import ResolutionResult

logger = logging.getLogger("ctxpack.merge")

_SUPERSEDING = (Directive.OVERRIDE, Directive.REPLACE)


class MergeEngine:
    """Computes the precedence-ordered unit list for a resolution."""

    def __init__(self, best_effort: bool = False) -> None:
        self.best_effort = best_effort

    def merge(
        self,
        resolution: ResolutionResult,
        scopes: Iterable[ScopeLayer | str] | None = None,
        best_effort: bool | None = None,
    ) -> MergeResult:
        """Merge the units of every selected pack whose scope is enabled."""
        best_effort = self.best_effort if best_effort is None else best_effort
        enabled = _enabled_scopes(scopes)
        position = {identity: i for i, identity in enumerate(resolution.order)}

        groups: dict[str, list[MergedUnit]] = {}
        for pack in resolution.ordered_packs():
            if pack.scope not in enabled:
                continue
            for unit in pack.units:
                groups.setdefault(unit.key, []).append(MergedUnit.from_unit(pack, unit))

        merged: list[tuple[tuple[int, str], list[MergedUnit]]] = []
        conflicts: list[MergeConflict] = []
        discarded: list[DiscardedUnit] = []

        for key in sorted(groups):
            members = sorted(
                groups[key], key=lambda u: (u.scope.rank, u.install_order, u.pack)
            )
            kept, group_conflicts, group_discarded = self._fold(key, members, best_effort)
            conflicts.extend(group_conflicts)
            discarded.extend(group_discarded)
            if kept:
                anchor = min(position.get(u.pack, len(position)) for u in kept)
                merged.append(((anchor, key), kept))

        merged.sort(key=lambda entry: entry[0])
        units = tuple(u for _, kept in merged for u in kept)

        for item in discarded:
            logger.debug("Discarded %s (%s)", item.unit_id, item.reason)

        return MergeResult(
            units=units,
            conflicts=tuple(conflicts),
            discarded=tuple(discarded),
            scopes=tuple(s for s in ScopeLayer.ordered() if s in enabled),
        )

    def _fold(
        self, key: str, members: list[MergedUnit], best_effort: bool
    ) -> tuple[list[MergedUnit], list[MergeConflict], list[DiscardedUnit]]:
        """Fold one key's units from the lowest scope to the highest."""
        kept: list[MergedUnit] = []
        conflicts: list[MergeConflict] = []
        discarded: list[DiscardedUnit] = []
        overridden = False
        closed = False

        for scope in ScopeLayer.ordered():
            at_scope = [u for u in members if u.scope == scope]
            if not at_scope:
                continue

            if closed:
                discarded.extend(_discard(u, "closed") for u in at_scope)
                continue

            supers = [u for u in at_scope if u.directive in _SUPERSEDING]
            extends = [u for u in at_scope if u.directive == Directive.EXTEND]

            if len(supers) > 1:
                packs = [u.pack for u in supers]
                if not best_effort:
                    conflicts.append(MergeConflict(key=key, scope=scope, packs=packs))
                    discarded.extend(_discard(u, "conflict") for u in kept + at_scope)
                    discarded.extend(
                        _discard(u, "conflict") for u in members if u.scope.rank > scope.rank
                    )
                    return [], conflicts, discarded

                winner = supers[0]
                logger.warning(
                    "Override conflict on '%s' at %s scope between %s; keeping %s",
                    key, scope.value, ", ".join(packs), winner.pack,
                )
                conflicts.append(
                    MergeConflict(key=key, scope=scope, packs=packs, resolved_by=winner.pack)
                )
                discarded.extend(_discard(u, "conflict") for u in supers[1:])
                supers = [winner]

            if supers:
                winner = supers[0]
                discarded.extend(_discard(u, "overridden") for u in kept)
                kept = [winner, *extends]
                overridden = True
                closed = winner.directive == Directive.REPLACE
            elif overridden:
                discarded.extend(_discard(u, "overridden") for u in extends)
            else:
                kept.extend(extends)

        return kept, conflicts, discarded


def _discard(unit: MergedUnit, reason: str) -> DiscardedUnit:
    return DiscardedUnit(unit_id=unit.unit_id, key=unit.key, scope=unit.scope, reason=reason)


def _enabled_scopes(scopes: Iterable[ScopeLayer | str] | None) -> set[ScopeLayer]:
    if scopes is None:
        return set(ScopeLayer)
    return {ScopeLayer(s) for s in scopes}
