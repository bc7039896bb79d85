"""Dependency resolution: one concrete version per pack identity.

Policy:
  For every identity reachable from the root set, intersect all ranges
  that constrain it and select the greatest installed version inside the
  intersection ("newest satisfying version").

Algorithm:
  Selection is iterated to a fixed point. Each round walks the graph from
  the roots through the versions chosen in the previous round, collects
  every constraint it meets, and reselects each identity from scratch.
  A version change can retract the constraints its predecessor imposed,
  which is why rounds restart from the roots instead of patching the
  previous selection. Rounds are bounded by the snapshot size.

  A missing or unsatisfiable identity found mid-iteration leaves that
  identity unselected for the round; the constraints behind it may belong
  to a version about to be replaced. Only conflicts that survive
  convergence count.

  Optional constraints are folded in one at a time (sorted by requirer)
  and kept only while the intersection still admits an installed version;
  the rest are dropped. When a surviving conflict is reached only through
  packs held by optional edges, those edges are dropped with the conflict's
  reason and resolution starts over. Hard cycles among the final selection
  are fatal.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from ctxpack.exceptions import ResolutionConflict
from ctxpack.packs.models import DependencyConstraint, Pack, canonical_digest, parse_identity
from ctxpack.packs.store import PackSnapshot
from ctxpack.packs.version import ANY
from ctxpack.resolver.graph import build_dependency_graph, dependency_order, find_hard_cycle
from ctxpack.resolver.models import (
    ROOT,
    ConstraintRecord,
    DroppedConstraint,
    ResolutionResult,
)

logger = logging.getLogger("ctxpack.resolver")

RootRequest = str | DependencyConstraint


class DependencyResolver:
    """Resolves a pack snapshot into a consistent, ordered selection.

    Usage:
        resolver = DependencyResolver()
        result = resolver.resolve(store.snapshot())
        for pack in result.ordered_packs():
            ...
    """

    def resolve(
        self,
        snapshot: PackSnapshot,
        roots: Iterable[RootRequest] | None = None,
    ) -> ResolutionResult:
        """Resolve `roots` (default: every directly installed pack).

        Raises:
            ResolutionConflict: a hard constraint cannot be met, a hard
                dependency is missing, or hard dependencies form a cycle.
        """
        requests = self._root_requests(snapshot, roots)
        banned: dict[str, str] = {}

        for _ in range(len(snapshot.identities) + 1):
            selection, dropped, conflicts, constraints = self._fixed_point(
                snapshot, requests, banned
            )
            if not conflicts:
                break
            conflict = conflicts[0]
            anchors = self._optional_anchors(conflict, constraints) - banned.keys()
            if not anchors:
                raise conflict
            for identity in sorted(anchors):
                logger.debug(
                    "Dropping optional %s: %s below it is %s",
                    identity, conflict.identity, conflict.kind,
                )
                banned[identity] = conflict.kind
        else:
            raise conflicts[0]

        skip = {
            (drop.record.source.split("@", 1)[0], drop.record.target)
            for drop in dropped
            if drop.record.source != ROOT
        }
        graph = build_dependency_graph(selection.values(), skip=skip)
        cycle = find_hard_cycle(graph)
        if cycle:
            raise ResolutionConflict("cycle", identity=cycle[0], cycle=cycle)

        order = dependency_order(graph)
        selected = tuple(selection[identity] for identity in sorted(selection))
        edges = tuple(
            (u, v, bool(d.get("optional"))) for u, v, d in sorted(graph.edges(data=True))
        )
        root_texts = tuple(
            f"{r.target} {r.range}" + (" (optional)" if r.optional else "")
            for r in requests
        )
        digest = canonical_digest({
            "roots": list(root_texts),
            "selected": [p.fingerprint() for p in selected],
            "order": list(order),
            "edges": [list(edge) for edge in edges],
            "dropped": [
                [d.record.source, d.record.target, str(d.record.range), d.reason]
                for d in dropped
            ],
        })

        for pack in selected:
            logger.debug("Selected %s", pack.ref)
        for drop in dropped:
            logger.debug("Dropped optional %s (%s)", drop.record.describe(), drop.reason)

        return ResolutionResult(
            selected=selected,
            order=tuple(order),
            edges=edges,
            dropped=tuple(dropped),
            roots=root_texts,
            digest=digest,
        )

    # -------------------------------------------------------------------
    # Root set
    # -------------------------------------------------------------------

    @staticmethod
    def _root_requests(
        snapshot: PackSnapshot, roots: Iterable[RootRequest] | None
    ) -> list[DependencyConstraint]:
        if roots is None:
            roots = snapshot.roots()
        requests: dict[str, DependencyConstraint] = {}
        for root in roots:
            if isinstance(root, DependencyConstraint):
                request = root
            else:
                text = root.strip().lstrip("@")
                identity, _, version = text.partition("@")
                request = DependencyConstraint(
                    target=parse_identity(identity), range=version or ANY
                )
            key = f"{request.target} {request.range} {request.optional}"
            requests[key] = request
        return [requests[k] for k in sorted(requests)]

    # -------------------------------------------------------------------
    # Fixed point
    # -------------------------------------------------------------------

    def _fixed_point(
        self,
        snapshot: PackSnapshot,
        requests: list[DependencyConstraint],
        banned: dict[str, str],
    ):
        """Iterate rounds until the selection stops changing.

        Conflicts found in a round only leave their identity unselected;
        they are returned with the converged selection so the caller can
        decide whether they are fatal.
        """
        selection: dict[str, Pack] = {}
        conflicts: list[ResolutionConflict] = []
        changed: list[tuple[str, str]] = []

        for _ in range(len(snapshot) + len(requests) + 2):
            constraints = self._collect(requests, selection)
            chosen, dropped, conflicts = self._select(snapshot, constraints, banned)
            if _refs(chosen) == _refs(selection):
                return selection, dropped, conflicts, constraints
            changed = sorted(
                set(_refs(chosen).items()) ^ set(_refs(selection).items())
            )
            selection = chosen

        if conflicts:
            return selection, dropped, conflicts, constraints
        raise ResolutionConflict("non_convergent", identity=changed[0][0])

    @staticmethod
    def _optional_anchors(
        conflict: ResolutionConflict, constraints: dict[str, list[ConstraintRecord]]
    ) -> set[str]:
        """Identities held only by optional edges that lead to `conflict`.

        Walks up from each failing hard constraint through the hard
        constraints on its requirer. An empty set means a hard path from a
        root reaches the failure and nothing optional can be given up.
        """

        def held_by(identity: str, seen: frozenset[str]) -> tuple[bool, set[str]]:
            if identity in seen:
                return False, set()
            hard = [r for r in constraints.get(identity, []) if not r.optional]
            if not hard:
                return False, {identity}
            rooted, anchors = False, set()
            for record in hard:
                if record.source == ROOT:
                    rooted = True
                    continue
                up_rooted, up_anchors = held_by(
                    record.source.split("@", 1)[0], seen | {identity}
                )
                rooted = rooted or up_rooted
                anchors |= up_anchors
            return rooted, anchors

        paths = [
            (True, set()) if record.source == ROOT
            else held_by(record.source.split("@", 1)[0], frozenset({conflict.identity}))
            for record in conflict.constraints
        ]
        if conflict.kind == "missing":
            if any(rooted for rooted, _ in paths):
                return set()
        elif all(rooted for rooted, _ in paths):
            return set()
        return set().union(*(anchors for rooted, anchors in paths if not rooted))

    # -------------------------------------------------------------------
    # One round: constraint collection
    # -------------------------------------------------------------------

    @staticmethod
    def _collect(
        requests: list[DependencyConstraint], selection: dict[str, Pack]
    ) -> dict[str, list[ConstraintRecord]]:
        """Walk from the roots through the current selection."""
        constraints: dict[str, list[ConstraintRecord]] = {}
        queue: deque[tuple[str, tuple[str, ...]]] = deque()

        for request in requests:
            constraints.setdefault(request.target, []).append(
                ConstraintRecord(
                    target=request.target,
                    range=request.range,
                    optional=request.optional,
                )
            )
            queue.append((request.target, ()))

        visited: set[str] = set()
        while queue:
            identity, chain = queue.popleft()
            if identity in visited:
                continue
            visited.add(identity)
            pack = selection.get(identity)
            if pack is None:
                continue

            pack_chain = chain + (pack.ref,)
            for dep in sorted(pack.dependencies, key=lambda d: (d.target, str(d.range))):
                constraints.setdefault(dep.target, []).append(
                    ConstraintRecord(
                        target=dep.target,
                        range=dep.range,
                        source=pack.ref,
                        optional=dep.optional,
                        chain=pack_chain,
                    )
                )
                if dep.target not in visited:
                    queue.append((dep.target, pack_chain))

        return constraints

    # -------------------------------------------------------------------
    # One round: version selection
    # -------------------------------------------------------------------

    @staticmethod
    def _select(
        snapshot: PackSnapshot,
        constraints: dict[str, list[ConstraintRecord]],
        banned: dict[str, str],
    ) -> tuple[dict[str, Pack], list[DroppedConstraint], list[ResolutionConflict]]:
        chosen: dict[str, Pack] = {}
        dropped: list[DroppedConstraint] = []
        conflicts: list[ResolutionConflict] = []

        for identity in sorted(constraints):
            records = constraints[identity]
            hard = [r for r in records if not r.optional]
            optional = sorted(
                (r for r in records if r.optional), key=lambda r: (r.source, str(r.range))
            )
            available = snapshot.versions(identity)
            versions = [p.version for p in available]

            if identity in banned:
                dropped.extend(DroppedConstraint(r, banned[identity]) for r in optional)
                optional = []

            if not available:
                if hard:
                    conflicts.append(
                        ResolutionConflict("missing", identity=identity, constraints=hard)
                    )
                dropped.extend(DroppedConstraint(r, "missing") for r in optional)
                continue

            allowed = ANY
            for record in hard:
                allowed = allowed.intersect(record.range)
            if hard and allowed.best_of(versions) is None:
                conflicts.append(
                    ResolutionConflict(
                        "unsatisfiable",
                        identity=identity,
                        constraints=hard,
                        available=[str(v) for v in versions],
                    )
                )
                continue

            accepted = 0
            for record in optional:
                narrowed = allowed.intersect(record.range)
                if narrowed.best_of(versions) is None:
                    dropped.append(DroppedConstraint(record, "unsatisfiable"))
                    continue
                allowed = narrowed
                accepted += 1

            if not hard and not accepted:
                continue

            best = allowed.best_of(versions)
            chosen[identity] = next(p for p in available if p.version == best)

        return chosen, dropped, conflicts


def _refs(selection: dict[str, Pack]) -> dict[str, str]:
    return {identity: pack.ref for identity, pack in selection.items()}
