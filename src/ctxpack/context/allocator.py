"""Budget allocation over merged content.

Required items go in unconditionally; if they alone exceed the ceiling
the assembly is infeasible. Optional items are ranked by relevance
(descending), then install order (oldest first), then unit id, and
accepted greedily. This is a bounded greedy choice, not a knapsack solve:
relevance scores are heuristics supplied by the caller, so determinism
and linear behaviour after sorting matter more than optimal packing.

Under ``PREFIX`` the scan stops at the first item that does not fit,
which makes the selection monotone in the budget. ``FIRST_FIT`` keeps
scanning past items that do not fit.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from ctxpack.context.models import AllocationPolicy, AllocationResult, ContextItem
from ctxpack.exceptions import OverBudgetRequired
from ctxpack.merge.models import MergedUnit

logger = logging.getLogger("ctxpack.context")


class BudgetAllocator:
    """Selects the merged units that fit inside a byte budget."""

    def __init__(self, policy: AllocationPolicy | str = AllocationPolicy.FIRST_FIT) -> None:
        self.policy = AllocationPolicy(policy)

    def allocate(
        self,
        units: Sequence[MergedUnit],
        budget: int,
        scores: Mapping[str, float] | None = None,
    ) -> AllocationResult:
        """Select units for `budget` bytes.

        Args:
            units: Merged units in output order.
            budget: Budget ceiling in bytes (must be positive).
            scores: Relevance per unit id; missing ids score 0.

        Raises:
            OverBudgetRequired: required units alone exceed the budget.
        """
        if budget <= 0:
            raise ValueError(f"Budget must be positive, got {budget}")
        scores = scores or {}

        items = [
            ContextItem(**unit.model_dump(), relevance=float(scores.get(unit.unit_id, 0.0)))
            for unit in units
        ]

        required = [item for item in items if item.required]
        required_bytes = sum(item.size for item in required)
        if required_bytes > budget:
            raise OverBudgetRequired(
                required_bytes, budget, [item.unit_id for item in required]
            )

        ranked = sorted(
            (item for item in items if not item.required),
            key=lambda item: (-item.relevance, item.install_order, item.unit_id),
        )

        chosen = {item.unit_id for item in required}
        used = required_bytes
        dropped: list[ContextItem] = []
        stopped = False

        for item in ranked:
            if not stopped and used + item.size <= budget:
                chosen.add(item.unit_id)
                used += item.size
                continue
            dropped.append(item)
            if self.policy == AllocationPolicy.PREFIX:
                stopped = True

        selected = tuple(item for item in items if item.unit_id in chosen)
        logger.debug(
            "Allocated %d/%d unit(s), %d/%d bytes (%s)",
            len(selected), len(items), used, budget, self.policy.value,
        )
        return AllocationResult(
            selected=selected,
            dropped=tuple(dropped),
            bytes_used=used,
            budget=budget,
        )
