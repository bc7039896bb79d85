"""Budgeted context assembly.

Resolves installed packs, merges their content across scope layers and
fits the result into a byte budget, caching outputs by digest.

Usage:
    from ctxpack.context import ContextAssembler, AssemblyQuery

    assembler = ContextAssembler(store)
    output = assembler.assemble(AssemblyQuery(budget=16000))
    print(output.render())
"""

from ctxpack.context.allocator import BudgetAllocator
from ctxpack.context.cache import AssemblyCache, make_cache_key
from ctxpack.context.engine import ContextAssembler
from ctxpack.context.models import (
    AllocationPolicy,
    AllocationResult,
    AssemblyOutput,
    AssemblyQuery,
    ContextItem,
)

__all__ = [
    "AllocationPolicy",
    "AllocationResult",
    "AssemblyCache",
    "AssemblyOutput",
    "AssemblyQuery",
    "BudgetAllocator",
    "ContextAssembler",
    "ContextItem",
    "make_cache_key",
]
