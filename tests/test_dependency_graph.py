# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the adjacency matrix helpers and the stable topological peel.
"""

from __future__ import annotations

import numpy as np

from entityalchemy.dependency_graph import build_adjacency, find_cycle, stable_topological_order


class TestBuildAdjacency:
    def test_edges_set_cells(self):
        adjacency = build_adjacency(3, [(0, 1), (1, 2)])
        assert adjacency.dtype == np.bool_
        assert adjacency.shape == (3, 3)
        assert adjacency[0, 1] and adjacency[1, 2]
        assert int(adjacency.sum()) == 2

    def test_self_loops_ignored(self):
        adjacency = build_adjacency(2, [(0, 0), (1, 1)])
        assert not adjacency.any()


class TestStableTopologicalOrder:
    """Ordering is stable with respect to discovery order."""

    def test_no_edges_keeps_discovery_order(self):
        ordered, residue = stable_topological_order(build_adjacency(4, []))
        assert ordered == [0, 1, 2, 3]
        assert residue == []

    def test_edges_pull_dependencies_forward(self):
        # 2 must precede 0; 3 must precede 1
        ordered, residue = stable_topological_order(build_adjacency(4, [(2, 0), (3, 1)]))
        assert ordered == [2, 0, 3, 1]
        assert residue == []

    def test_lowest_ready_index_wins(self):
        ordered, _ = stable_topological_order(build_adjacency(3, [(0, 2), (1, 2)]))
        assert ordered == [0, 1, 2]

    def test_cycle_left_in_residue(self):
        ordered, residue = stable_topological_order(build_adjacency(4, [(1, 2), (2, 1), (2, 3)]))
        assert ordered == [0]
        assert residue == [1, 2, 3]

    def test_empty_graph(self):
        assert stable_topological_order(build_adjacency(0, [])) == ([], [])


class TestFindCycle:
    def test_cycle_follows_edge_direction(self):
        adjacency = build_adjacency(3, [(0, 1), (1, 2), (2, 0)])
        _, residue = stable_topological_order(adjacency)
        cycle = find_cycle(adjacency, residue)

        assert sorted(cycle) == [0, 1, 2]
        for before, after in zip(cycle, cycle[1:] + cycle[:1]):
            assert adjacency[before, after]

    def test_cycle_excludes_nodes_behind_it(self):
        adjacency = build_adjacency(3, [(0, 1), (1, 0), (1, 2)])
        _, residue = stable_topological_order(adjacency)
        assert residue == [0, 1, 2]
        assert sorted(find_cycle(adjacency, residue)) == [0, 1]

    def test_no_residue_no_cycle(self):
        assert find_cycle(build_adjacency(2, [(0, 1)]), []) is None
