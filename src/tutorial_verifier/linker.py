"""
Dependency Linker
=================

Turns extracted blocks into an execution plan that runs every defining block
before the blocks that use what it defines. Independent blocks keep their
document order.
"""

import heapq
from collections import defaultdict
from typing import Iterable

from observability.logging_config import get_logger
from tutorial_verifier.errors import DependencyCycleError
from tutorial_verifier.models import Block, ExecutionPlan

logger = get_logger(__name__)


class DependencyGraph:
    """Directed graph of block indices; an edge u -> v means v depends on u."""

    def __init__(self, nodes: Iterable[int]) -> None:
        self.nodes: list[int] = sorted(nodes)
        self.successors: dict[int, set[int]] = defaultdict(set)
        self.predecessors: dict[int, set[int]] = defaultdict(set)
        self.reasons: dict[tuple[int, int], set[str]] = defaultdict(set)

    def add_edge(self, provider: int, consumer: int, name: str) -> None:
        if provider == consumer:
            return
        self.successors[provider].add(consumer)
        self.predecessors[consumer].add(provider)
        self.reasons[(provider, consumer)].add(name)

    def topological_order(self) -> list[int]:
        """
        Kahn's algorithm with a min-heap so ties resolve to document order.

        Raises:
            DependencyCycleError: If some blocks can never become ready
        """
        in_degree = {node: len(self.predecessors[node]) for node in self.nodes}
        ready = [node for node in self.nodes if in_degree[node] == 0]
        heapq.heapify(ready)
        order: list[int] = []

        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for successor in self.successors[node]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    heapq.heappush(ready, successor)

        if len(order) != len(self.nodes):
            remaining = {node for node in self.nodes if in_degree[node] > 0}
            cycle = self._cycle_members(remaining)
            names = {
                consumer: sorted(
                    name
                    for provider in self.predecessors[consumer] & cycle
                    for name in self.reasons[(provider, consumer)]
                )
                for consumer in cycle
            }
            raise DependencyCycleError(cycle, names)
        return order

    def _cycle_members(self, remaining: set[int]) -> set[int]:
        """Blocks in ``remaining`` that can reach themselves (drops blocks merely downstream of a cycle)."""
        members = set()
        for start in remaining:
            stack = [s for s in self.successors[start] if s in remaining]
            seen: set[int] = set()
            while stack:
                node = stack.pop()
                if node == start:
                    members.add(start)
                    break
                if node in seen:
                    continue
                seen.add(node)
                stack.extend(s for s in self.successors[node] if s in remaining)
        return members or remaining


def build_graph(blocks: list[Block]) -> DependencyGraph:
    """
    Build the dependency graph for the non-skipped blocks.

    For each required name the provider is the latest earlier block that
    defines it, or failing that the first later one. Names no block defines
    (pre-loaded tables, built-in functions) add no edge.
    """
    active = [block for block in blocks if not block.skip]
    graph = DependencyGraph(block.index for block in active)

    definers: dict[str, list[int]] = defaultdict(list)
    for block in active:
        for name in block.defined_names:
            definers[name].append(block.index)

    for block in active:
        for name in block.requires:
            candidates = definers.get(name)
            if not candidates:
                continue
            earlier = [i for i in candidates if i < block.index]
            provider = earlier[-1] if earlier else candidates[0]
            graph.add_edge(provider, block.index, name)
    return graph


def link_blocks(blocks: list[Block]) -> ExecutionPlan:
    """
    Order blocks so definitions precede their uses.

    Args:
        blocks: Blocks in document order

    Returns:
        ExecutionPlan with skipped blocks left at their document position

    Raises:
        DependencyCycleError: If the dependencies cannot be satisfied
    """
    graph = build_graph(blocks)
    order = graph.topological_order()
    by_index = {block.index: block for block in blocks}

    # Skipped blocks are slotted back in right after their document predecessor.
    planned: list[int] = []
    active = iter(order)
    for block in blocks:
        if block.skip:
            planned.append(block.index)
        else:
            planned.append(next(active))

    dependencies = {
        index: frozenset(graph.predecessors[index])
        for index in order
        if graph.predecessors[index]
    }
    moved = [i for pos, i in enumerate(planned) if i != blocks[pos].index]
    if moved:
        logger.info("blocks_reordered", moved=moved)
    return ExecutionPlan(blocks=[by_index[i] for i in planned], dependencies=dependencies)


def describe_plan(plan: ExecutionPlan) -> str:
    """Human-readable listing of the execution order."""
    lines = []
    for position, block in enumerate(plan.blocks, 1):
        deps = sorted(plan.depends_on(block.index))
        suffix = f" after {', '.join(f'#{d}' for d in deps)}" if deps else ""
        flag = " [skip]" if block.skip else ""
        defines = ", ".join(sorted(block.defined_names))
        defined = f" defines {defines}" if defines else ""
        lines.append(
            f"{position:>3}. #{block.index} {block.kind.value:<5} line {block.start_line}"
            f"{flag}{defined}{suffix}: {block.excerpt()}"
        )
    return "\n".join(lines)
