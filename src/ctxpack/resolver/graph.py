"""Dependency graph helpers built on networkx.

Nodes are pack identities; an edge A -> B means a selected version of A
declares a dependency on B. Edge attributes carry the declared range and
the optional flag.
"""

from __future__ import annotations

from typing import Iterable

import networkx as nx

from ctxpack.packs.models import Pack


def build_dependency_graph(packs: Iterable[Pack], skip: set[tuple[str, str]] | None = None) -> nx.DiGraph:
    """Graph of the dependencies among `packs`.

    Edges whose target is not among `packs`, or whose (source, target)
    pair is in `skip`, are left out.
    """
    skip = skip or set()
    packs = sorted(packs, key=lambda p: p.identity)
    present = {p.identity for p in packs}

    graph = nx.DiGraph()
    for pack in packs:
        graph.add_node(pack.identity, ref=pack.ref, scope=pack.scope.value)
    for pack in packs:
        for dep in sorted(pack.dependencies, key=lambda d: d.target):
            if dep.target not in present or (pack.identity, dep.target) in skip:
                continue
            if graph.has_edge(pack.identity, dep.target):
                # Keep the strongest declaration: a hard edge wins over optional.
                data = graph.edges[pack.identity, dep.target]
                data["optional"] = data["optional"] and dep.optional
                continue
            graph.add_edge(
                pack.identity, dep.target, range=str(dep.range), optional=dep.optional
            )
    return graph


def find_hard_cycle(graph: nx.DiGraph) -> list[str] | None:
    """Return a cycle over non-optional edges as [a, b, ..., a], or None."""
    hard = nx.DiGraph()
    hard.add_nodes_from(sorted(graph.nodes()))
    hard.add_edges_from(
        sorted((u, v) for u, v, d in graph.edges(data=True) if not d.get("optional"))
    )
    for node in sorted(hard.nodes()):
        try:
            edges = nx.find_cycle(hard, source=node)
        except nx.NetworkXNoCycle:
            continue
        cycle = [u for u, _ in edges]
        return cycle + [cycle[0]]
    return None


def dependency_order(graph: nx.DiGraph) -> list[str]:
    """Topological order with dependencies first, lexicographic among peers."""
    reverse = graph.reverse(copy=True)
    try:
        return list(nx.lexicographical_topological_sort(reverse))
    except nx.NetworkXUnfeasible:
        # Only optional edges can still form cycles here.
        return _scc_order(reverse)


def _scc_order(graph: nx.DiGraph) -> list[str]:
    """Handle cycles via SCC condensation + topological sort of the SCC DAG."""
    condensed = nx.condensation(graph)
    members = condensed.graph["mapping"]
    by_scc: dict[int, list[str]] = {}
    for node, scc in members.items():
        by_scc.setdefault(scc, []).append(node)

    ordered: list[str] = []
    for scc in nx.lexicographical_topological_sort(
        condensed, key=lambda s: min(by_scc[s])
    ):
        ordered.extend(sorted(by_scc[scc]))
    return ordered
