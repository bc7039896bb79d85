"""Context assembly: resolve, merge, allocate, cache.

Pipeline for one query:
  1. Take one snapshot of the pack store (never re-read mid-query)
  2. Resolve dependencies → one version per identity
  3. Build the cache key from the resolution digest and the query
  4. On a miss: merge across scopes, fail on unresolved conflicts unless
     best-effort, allocate the budget, store the output

Every step before the cache is a pure function of the snapshot and the
query, so identical inputs produce identical (and identically keyed)
outputs.
"""

from __future__ import annotations

import logging
import time

from ctxpack.config import EngineConfig
from ctxpack.context.allocator import BudgetAllocator
from ctxpack.context.cache import AssemblyCache, make_cache_key
from ctxpack.context.models import AllocationPolicy, AssemblyOutput, AssemblyQuery
from ctxpack.exceptions import MergeConflictError
from ctxpack.merge.engine import MergeEngine
from ctxpack.packs.store import PackSnapshot, PackStore
from ctxpack.resolver.models import ResolutionResult
from ctxpack.resolver.resolver import DependencyResolver

logger = logging.getLogger("ctxpack.context")


class ContextAssembler:
    """Assembles budgeted context documents from a pack store.

    Usage:
        assembler = ContextAssembler(store)
        output = assembler.assemble(AssemblyQuery(budget=16000, scores=scores))
        agent_context = output.render()
    """

    def __init__(
        self,
        store: PackStore,
        cache: AssemblyCache | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.store = store
        self.cache = cache if cache is not None else AssemblyCache()
        self.config = config or EngineConfig()
        self.resolver = DependencyResolver()
        self.merger = MergeEngine()
        self.last_hit = False
        self.last_elapsed_ms = 0.0
        store.subscribe(self._on_swap)

    def query(self, budget: int | None = None, **kwargs) -> AssemblyQuery:
        """Build a query, filling unset fields from the engine config."""
        kwargs.setdefault("best_effort", self.config.best_effort)
        kwargs.setdefault("policy", AllocationPolicy(self.config.policy))
        kwargs.setdefault("scopes", tuple(self.config.scopes))
        if budget is None:
            budget = self.config.default_budget
        return AssemblyQuery(budget=budget, **kwargs)

    def resolve(self, query: AssemblyQuery | None = None) -> ResolutionResult:
        roots = query.roots if query is not None else None
        return self.resolver.resolve(self.store.snapshot(), roots)

    def assemble(self, query: AssemblyQuery) -> AssemblyOutput:
        """Assemble the context for `query`.

        Raises:
            ResolutionConflict: dependencies cannot be resolved.
            MergeConflictError: unresolved override conflicts (strict mode).
            OverBudgetRequired: required units alone exceed the budget.
        """
        start_time = time.time()
        snapshot = self.store.snapshot()
        resolution = self.resolver.resolve(snapshot, query.roots)

        key = make_cache_key(
            resolution.digest, query.scope_digest(), query.budget, query.scores_digest()
        )
        output, hit = self.cache.get_or_compute(
            key,
            lambda: self._build(resolution, query, key),
            packs=resolution.refs(),
        )

        self.last_hit = hit
        self.last_elapsed_ms = round((time.time() - start_time) * 1000, 1)
        logger.debug(
            "Assembly %s %s in %.1fms", key[:12], "hit" if hit else "built", self.last_elapsed_ms
        )
        return output

    def _build(
        self, resolution: ResolutionResult, query: AssemblyQuery, key: str
    ) -> AssemblyOutput:
        merged = self.merger.merge(resolution, query.scopes, best_effort=query.best_effort)
        if merged.unresolved:
            raise MergeConflictError(merged.unresolved)

        allocation = BudgetAllocator(query.policy).allocate(
            merged.units, query.budget, query.scores
        )

        return AssemblyOutput(
            items=allocation.selected,
            dropped=tuple(item.unit_id for item in allocation.dropped),
            discarded=merged.discarded,
            conflicts=merged.conflicts,
            packs=tuple(p.ref for p in resolution.ordered_packs()),
            dropped_dependencies=tuple(d.record.describe() for d in resolution.dropped),
            bytes_used=allocation.bytes_used,
            budget=query.budget,
            resolution_digest=resolution.digest,
            cache_key=key,
        )

    def _on_swap(self, old: PackSnapshot, new: PackSnapshot) -> None:
        """Invalidate cache entries for pack versions that changed or vanished."""
        for pack in old:
            current = new.get(pack.identity, pack.version)
            if current is not None and current.fingerprint() == pack.fingerprint():
                continue
            self.cache.invalidate_pack(pack.identity, str(pack.version))

    def close(self) -> None:
        """Stop following store changes."""
        self.store.unsubscribe(self._on_swap)
