# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Dense dependency graphs over a small set of nodes.

Nodes are integer indices in discovery order; ``adjacency[i, j]`` means node ``i``
must come before node ``j``. The topological peel always takes the lowest ready
index, so the resulting order is stable with respect to discovery order.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

import numpy as np
from numba import jit


def build_adjacency(size: int, edges: Iterable[Tuple[int, int]]) -> np.ndarray:
    """Boolean adjacency matrix for ``size`` nodes; self loops are ignored."""
    adjacency = np.zeros((size, size), dtype=np.bool_)
    for before, after in edges:
        if before != after:
            adjacency[before, after] = True
    return adjacency


@jit(nopython=True, cache=True)
def _kahn_peel(adjacency: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Kahn's algorithm with a lowest-index-first ready set.

    Returns the order buffer and the number of nodes placed; nodes that were never
    placed sit on (or behind) a cycle.
    """
    size = adjacency.shape[0]
    in_degree = np.zeros(size, dtype=np.int64)
    for i in range(size):
        for j in range(size):
            if adjacency[i, j]:
                in_degree[j] += 1

    placed = np.zeros(size, dtype=np.bool_)
    order = np.full(size, -1, dtype=np.int64)
    count = 0
    while count < size:
        # || S.1: Pick the lowest index whose dependencies are all placed
        ready = -1
        for i in range(size):
            if not placed[i] and in_degree[i] == 0:
                ready = i
                break
        if ready == -1:
            break

        placed[ready] = True
        order[count] = ready
        count += 1
        for j in range(size):
            if adjacency[ready, j]:
                in_degree[j] -= 1
    return order, count


def stable_topological_order(adjacency: np.ndarray) -> Tuple[List[int], List[int]]:
    """
    Order nodes so every edge points forward.

    Returns:
        Tuple[List[int], List[int]]: (ordered indices, residue). The residue lists,
        in index order, nodes that could not be placed because of a cycle.
    """
    size = adjacency.shape[0]
    if size == 0:
        return [], []
    order, count = _kahn_peel(adjacency)
    ordered = [int(index) for index in order[:count]]
    placed = set(ordered)
    residue = [index for index in range(size) if index not in placed]
    return ordered, residue


def find_cycle(adjacency: np.ndarray, residue: List[int]) -> Optional[List[int]]:
    """
    Concrete cycle among the residue of a failed peel, in edge direction.

    Every residue node keeps at least one residue predecessor, so walking
    predecessors from any residue node must revisit a node.
    """
    if not residue:
        return None
    members = set(residue)
    path: List[int] = []
    position = {}
    node = residue[0]
    while node not in position:
        position[node] = len(path)
        path.append(node)
        predecessors = [i for i in residue if adjacency[i, node] and i in members]
        if not predecessors:
            return None
        node = predecessors[0]
    cycle = path[position[node]:]
    cycle.reverse()
    return cycle


__all__ = [
    "build_adjacency",
    "stable_topological_order",
    "find_cycle",
]
