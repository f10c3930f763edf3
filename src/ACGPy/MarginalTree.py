#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- ACGPy --
##  Library for Inference over Ancestral Conversion Graphs
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

"""
Author : Mark Kessler
Last Edit : 10/19/26
First Included in Version : 1.0.0
Docs   - [x]
Tests  - [x]
Design - [x]

Reconstruction of the marginal tree of a region.

Applying a region's conversions to the clonal frame one at a time, in order of
ascending departure height, is a sequence of prune-and-regraft operations.
The builder performs the same surgery in a single upward sweep over the
clonal frame events and the departure/arrival points of the region's
conversions, tracking which lineage carries the region's ancestral material on
each clonal frame edge and on each conversion edge.
"""

from __future__ import annotations
from enum import IntEnum
from typing import TYPE_CHECKING

from .ConversionGraph import PartitionInconsistency

if TYPE_CHECKING:
    from .ConversionGraph import ConversionGraph, ClonalFrame, Conversion
    from .Regions import Region


class MarginalTree:
    """
    A rooted, time-measured genealogy stored as an arena. Built by
    MarginalTreeBuilder and never mutated afterwards.
    """

    def __init__(self) -> None:
        self._heights : list[float] = []
        self._parents : list[int] = []
        self._children : list[list[int]] = []
        self._names : list[str | None] = []
        self._root : int = -1

    def _new_node(self, height : float, name : str = None,
                  children : tuple = ()) -> int:
        idx = len(self._heights)
        self._heights.append(height)
        self._parents.append(-1)
        self._children.append(list(children))
        self._names.append(name)
        for child in children:
            self._parents[child] = idx
        return idx

    def node_count(self) -> int:
        return len(self._heights)

    def root(self) -> int:
        return self._root

    def get_height(self, node : int) -> float:
        return self._heights[node]

    def get_parent(self, node : int) -> int:
        return self._parents[node]

    def get_children(self, node : int) -> list[int]:
        return list(self._children[node])

    def get_name(self, node : int) -> str | None:
        return self._names[node]

    def is_leaf(self, node : int) -> bool:
        return not self._children[node]

    def leaves(self) -> list[int]:
        return [node for node in range(len(self._heights))
                if not self._children[node]]

    def leaf_names(self) -> list[str]:
        return [self._names[leaf] for leaf in self.leaves()]

    def branch_length(self, node : int) -> float:
        par = self._parents[node]
        if par == -1:
            return 0.0
        return self._heights[par] - self._heights[node]

    def total_length(self) -> float:
        return sum(self.branch_length(node) for node in range(len(self._heights)))

    def postorder(self) -> list[int]:
        """
        Nodes in postorder (children before parents), children visited in
        stored order.
        """
        order = []
        stack = [(self._root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                order.append(node)
            else:
                stack.append((node, True))
                for child in reversed(self._children[node]):
                    stack.append((child, False))
        return order

    def clades(self) -> set[frozenset]:
        """
        The leaf name set below every internal node, for topology comparison.
        """
        below : dict[int, frozenset] = {}
        for node in self.postorder():
            if self.is_leaf(node):
                below[node] = frozenset([self._names[node]])
            else:
                below[node] = frozenset().union(
                    *(below[c] for c in self._children[node]))
        return {below[node] for node in below if not self.is_leaf(node)}

    def newick(self) -> str:
        """
        Newick string of this tree with branch lengths. Internal nodes are
        unlabeled.
        """
        def help(node : int) -> str:
            if self.is_leaf(node):
                label = self._names[node]
            else:
                label = "(" + ",".join(help(c) for c in self._children[node]) \
                        + ")"
            if node == self._root:
                return label
            return f"{label}:{self.branch_length(node)!r}"
        return help(self._root) + ";"

    def __repr__(self) -> str:
        return f"MarginalTree({self.newick()})"


class SweepKind(IntEnum):
    # Clonal frame events are processed before conversion points at the same
    # height, departures before arrivals.
    CLONAL = 0
    DEPARTURE = 1
    ARRIVAL = 2


class MarginalTreeBuilder:
    """
    Builds the marginal tree of a region.
    """

    def __init__(self, allow_same_edge_coalescence : bool = True) -> None:
        """
        Args:
            allow_same_edge_coalescence (bool, optional): Whether a conversion
                may reattach to the same clonal frame edge it departed from.
                When False such a conversion is a PartitionInconsistency.
        Returns:
            N/A
        """
        self.allow_same_edge_coalescence = allow_same_edge_coalescence

    def clonal_frame_tree(self, cf : ClonalFrame) -> MarginalTree:
        """
        The marginal tree of a region with no conversions, i.e. a copy of
        the clonal frame.
        """
        return self._sweep(cf, ())

    def build(self, graph : ConversionGraph, region : Region) -> MarginalTree:
        """
        Reconstruct the marginal tree of 'region'.

        Args:
            graph (ConversionGraph): The graph the region was derived from.
            region (Region): A region of one of the graph's loci.
        Returns:
            MarginalTree: The region's genealogy.
        Raises:
            PartitionInconsistency: If a conversion does not resolve to an
                                    edge of the current clonal frame, violates
                                    the same edge policy, or the surgery does
                                    not end in a single lineage.
        """
        cf = graph.get_clonal_frame()
        for conv in region.conversions:
            self._check_resolved(cf, conv)
        return self._sweep(cf, region.conversions)

    def _check_resolved(self, cf : ClonalFrame, conv : Conversion) -> None:
        for node, height in ((conv.departure_node, conv.departure_height),
                             (conv.arrival_node, conv.arrival_height)):
            if not cf.in_range(node) or not cf.edge_contains(node, height):
                raise PartitionInconsistency(f"{conv!r} does not resolve to \
                                               a clonal frame edge")
        if cf.is_root(conv.departure_node):
            raise PartitionInconsistency(f"{conv!r} departs from the root")
        if not self.allow_same_edge_coalescence and \
                conv.departure_node == conv.arrival_node:
            raise PartitionInconsistency(f"{conv!r} reattaches to the edge \
                                           it departed from")

    def _sweep(self, cf : ClonalFrame, conversions : tuple) -> MarginalTree:
        points = []
        for node in range(cf.node_count()):
            points.append((cf.get_height(node), SweepKind.CLONAL, 0.0, node,
                           node))
        for pos, conv in enumerate(conversions):
            tie = conv.id if conv.id is not None else pos
            points.append((conv.departure_height, SweepKind.DEPARTURE,
                           conv.departure_height, tie, pos))
            points.append((conv.arrival_height, SweepKind.ARRIVAL,
                           conv.departure_height, tie, pos))
        points.sort()

        tree = MarginalTree()
        # Clonal frame node -> marginal lineage on the edge above it
        on_edge : dict[int, int] = {}
        # Conversion position -> marginal lineage carried by the conversion
        in_flight : dict[int, int] = {}

        for height, kind, _, _, item in points:
            if kind == SweepKind.CLONAL:
                kids = cf.get_children(item)
                if not kids:
                    on_edge[item] = tree._new_node(height, cf.get_name(item))
                    continue
                lineages = [on_edge.pop(c) for c in kids if c in on_edge]
                if len(lineages) > 1:
                    on_edge[item] = tree._new_node(height,
                                                   children = lineages)
                elif lineages:
                    on_edge[item] = lineages[0]

            elif kind == SweepKind.DEPARTURE:
                node1 = conversions[item].departure_node
                # An edge without ancestral material makes the conversion
                # silent for this region.
                if node1 in on_edge:
                    in_flight[item] = on_edge.pop(node1)

            else:
                if item not in in_flight:
                    continue
                lineage = in_flight.pop(item)
                node2 = conversions[item].arrival_node
                if node2 in on_edge:
                    on_edge[node2] = tree._new_node(
                        height, children = (on_edge[node2], lineage))
                else:
                    on_edge[node2] = lineage

        remaining = list(on_edge.values()) + list(in_flight.values())
        if len(remaining) != 1:
            raise PartitionInconsistency(f"Marginal tree reconstruction ended \
                                           with {len(remaining)} lineages")
        tree._root = remaining[0]
        return tree
