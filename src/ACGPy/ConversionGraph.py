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

Core data model for ancestral conversion graphs (ACGs).

An ACG is a clonal frame (a rooted, binary, time-measured tree) overlaid with
conversion edges. Each conversion lifts the ancestry of a contiguous interval
of sites on one locus off the clonal frame at a departure point and reattaches
it at an older arrival point.

The clonal frame is stored as an arena: nodes are stable integer indices into
parallel lists of heights, parents, children and names. Edges are identified by
their child node. Every mutation of a ConversionGraph goes through a reversible
GraphEdit so that rejected proposals can be rolled back.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple
import networkx as nx

from .Edits import (GraphEdit, AddConversionEdit, RemoveConversionEdit,
                    UpdateConversionEdit, NodeHeightEdit)
from .Regions import Region, RegionPartitioner

#########################
#### EXCEPTION CLASS ####
#########################

class ConversionGraphError(Exception):
    """
    Base class for all errors raised while building or editing an ACG.
    """
    def __init__(self, message = "Error in conversion graph"):
        self.message = message
        super().__init__(self.message)

class InvalidConversion(ConversionGraphError):
    """
    A conversion is structurally impossible: bad heights, an out of range
    site interval, or a departure/arrival point that does not lie on an edge of
    the current clonal frame. The graph is left untouched.
    """
    def __init__(self, message = "Invalid conversion"):
        super().__init__(message)

class ClonalFrameError(ConversionGraphError):
    """
    The clonal frame is malformed, or an edit would make it so.
    """
    def __init__(self, message = "Malformed clonal frame"):
        super().__init__(message)

class PartitionInconsistency(ConversionGraphError):
    """
    Region or marginal tree reconstruction could not resolve a consistent
    topology from the current graph state.
    """
    def __init__(self, message = "Inconsistent conversion graph state"):
        super().__init__(message)

##########################
#### LOCI & EVENTS ####
##########################

@dataclass(frozen = True)
class Locus:
    """
    An independent genomic segment with its own site coordinate space.
    """
    name : str
    site_count : int

    def __post_init__(self) -> None:
        if int(self.site_count) != self.site_count or self.site_count <= 0:
            raise ConversionGraphError(f"Locus '{self.name}' must have a \
                                         positive integer site count, got \
                                         {self.site_count}")

    def get_name(self) -> str:
        return self.name

    def get_site_count(self) -> int:
        return self.site_count

class EventType(Enum):
    SAMPLE = 0
    COALESCENCE = 1

class Event(NamedTuple):
    """
    A clonal frame event. 'lineage_count' is the number of clonal frame
    lineages present in the interval directly above the event.
    """
    height : float
    type : EventType
    lineage_count : int
    node : int

#########################
#### CONVERSION ####
#########################

class Conversion:
    """
    One conversion edge. The ancestry of sites [start_site, end_site] (both
    inclusive) of 'locus' leaves the clonal frame edge above 'departure_node'
    at 'departure_height' and rejoins the edge above 'arrival_node' at
    'arrival_height'.

    Conversions are compared by identity. The 'id' is assigned by the graph
    that holds the conversion and is used to break ties deterministically.
    """

    FIELDS = ("locus", "start_site", "end_site", "departure_node",
              "departure_height", "arrival_node", "arrival_height")

    def __init__(self,
                 locus : Locus,
                 start_site : int,
                 end_site : int,
                 departure_node : int,
                 departure_height : float,
                 arrival_node : int,
                 arrival_height : float) -> None:
        """
        Args:
            locus (Locus): The locus whose sites are converted.
            start_site (int): First converted site.
            end_site (int): Last converted site (inclusive).
            departure_node (int): Clonal frame node below the departure point.
            departure_height (float): Height of the departure point.
            arrival_node (int): Clonal frame node below the arrival point.
            arrival_height (float): Height of the arrival point.
        Returns:
            N/A
        """
        self.locus : Locus = locus
        self.start_site : int = int(start_site)
        self.end_site : int = int(end_site)
        self.departure_node : int = int(departure_node)
        self.departure_height : float = float(departure_height)
        self.arrival_node : int = int(arrival_node)
        self.arrival_height : float = float(arrival_height)
        self.id : int | None = None

    def state(self) -> tuple:
        """
        Snapshot of every mutable field, in Conversion.FIELDS order.

        Returns:
            tuple: (locus, start, end, node1, height1, node2, height2)
        """
        return tuple(getattr(self, attr) for attr in Conversion.FIELDS)

    def set_state(self, state : tuple) -> None:
        for attr, value in zip(Conversion.FIELDS, state):
            setattr(self, attr, value)

    def site_count(self) -> int:
        return self.end_site - self.start_site + 1

    def contains_site(self, site : int) -> bool:
        return self.start_site <= site <= self.end_site

    def copy(self) -> Conversion:
        """
        Copy of this conversion, keeping its id.
        """
        new_conv = Conversion(*self.state())
        new_conv.id = self.id
        return new_conv

    def __repr__(self) -> str:
        return (f"Conversion(id={self.id}, locus={self.locus.name}, "
                f"sites=[{self.start_site}, {self.end_site}], "
                f"{self.departure_node}@{self.departure_height} -> "
                f"{self.arrival_node}@{self.arrival_height})")

#########################
#### CLONAL FRAME ####
#########################

class ClonalFrame:
    """
    Rooted binary tree with node heights, stored as an arena. A parent index of
    -1 marks the root.
    """

    def __init__(self) -> None:
        self._heights : list[float] = []
        self._parents : list[int] = []
        self._children : list[list[int]] = []
        self._names : list[str | None] = []

    @classmethod
    def from_parent_list(cls,
                         parents : list[int],
                         heights : list[float],
                         names : list[str | None] = None) -> ClonalFrame:
        """
        Build a clonal frame from parallel parent/height (and name) lists.

        Args:
            parents (list[int]): parents[i] is the parent of node i, or -1 for
                                 the root.
            heights (list[float]): heights[i] is the height of node i.
            names (list[str | None], optional): Node names. Leaves default to
                                                "t<i>".
        Returns:
            ClonalFrame: The new clonal frame.
        Raises:
            ClonalFrameError: If the lists do not describe a binary tree with
                              parents strictly older than their children.
        """
        if len(parents) != len(heights):
            raise ClonalFrameError("Parent and height lists differ in length")
        if names is not None and len(names) != len(parents):
            raise ClonalFrameError("Name and parent lists differ in length")

        cf = cls()
        cf._heights = [float(h) for h in heights]
        cf._parents = [int(p) for p in parents]
        cf._children = [[] for _ in parents]
        cf._names = list(names) if names is not None else [None] * len(parents)

        for node, par in enumerate(cf._parents):
            if par == -1:
                continue
            if par < 0 or par >= len(parents) or par == node:
                raise ClonalFrameError(f"Node {node} has invalid parent {par}")
            cf._children[par].append(node)

        for node in cf.leaves():
            if cf._names[node] is None:
                cf._names[node] = f"t{node}"

        cf.validate()
        return cf

    def add_node(self,
                 height : float,
                 name : str = None,
                 children : list[int] = ()) -> int:
        """
        Append a node and attach the given (currently parentless) children.

        Args:
            height (float): Node height.
            name (str, optional): Node name.
            children (list[int], optional): Indices of the node's children.
        Returns:
            int: The new node's index.
        """
        idx = len(self._heights)
        for child in children:
            if child < 0 or child >= idx:
                raise ClonalFrameError(f"Unknown child node {child}")
            if self._parents[child] != -1:
                raise ClonalFrameError(f"Node {child} already has a parent")

        self._heights.append(float(height))
        self._parents.append(-1)
        self._children.append([])
        self._names.append(name)

        for child in children:
            self._parents[child] = idx
            self._children[idx].append(child)
        return idx

    def validate(self) -> None:
        """
        Check that this is a single rooted binary tree whose parents are
        strictly older than their children.

        Raises:
            ClonalFrameError: On any violation.
        """
        if len(self._heights) == 0:
            raise ClonalFrameError("Clonal frame has no nodes")
        root = self.root()

        for node, kids in enumerate(self._children):
            if len(kids) not in (0, 2):
                raise ClonalFrameError(f"Node {node} has {len(kids)} children;\
                                         clonal frame must be binary")
            for child in kids:
                if self._heights[child] >= self._heights[node]:
                    raise ClonalFrameError(f"Node {child} is not younger than \
                                             its parent {node}")

        # Reachability from the root rules out cycles among the other nodes
        seen = set()
        stack = [root]
        while stack:
            node = stack.pop()
            seen.add(node)
            stack.extend(self._children[node])
        if len(seen) != len(self._heights):
            raise ClonalFrameError("Clonal frame is not connected")

    def node_count(self) -> int:
        return len(self._heights)

    def root(self) -> int:
        roots = [node for node, par in enumerate(self._parents) if par == -1]
        if len(roots) != 1:
            raise ClonalFrameError(f"Clonal frame has {len(roots)} roots")
        return roots[0]

    def is_root(self, node : int) -> bool:
        return self._parents[node] == -1

    def is_leaf(self, node : int) -> bool:
        return len(self._children[node]) == 0

    def get_height(self, node : int) -> float:
        return self._heights[node]

    def get_parent(self, node : int) -> int:
        return self._parents[node]

    def get_children(self, node : int) -> list[int]:
        return list(self._children[node])

    def get_name(self, node : int) -> str | None:
        return self._names[node]

    def set_name(self, node : int, name : str) -> None:
        self._names[node] = name

    def node_named(self, name : str) -> int:
        """
        Args:
            name (str): A node name.
        Returns:
            int: The index of the node with that name.
        Raises:
            ClonalFrameError: If no node has that name.
        """
        for node, node_name in enumerate(self._names):
            if node_name == name:
                return node
        raise ClonalFrameError(f"No clonal frame node named '{name}'")

    def leaves(self) -> list[int]:
        return [node for node in range(len(self._heights))
                if not self._children[node]]

    def leaf_names(self) -> list[str]:
        return [self._names[leaf] for leaf in self.leaves()]

    def in_range(self, node : int) -> bool:
        return 0 <= node < len(self._heights)

    def branch_length(self, node : int) -> float:
        """
        Length of the edge above 'node'. The root has no edge, so 0 is
        returned for it.
        """
        par = self._parents[node]
        if par == -1:
            return 0.0
        return self._heights[par] - self._heights[node]

    def total_length(self) -> float:
        return sum(self.branch_length(node)
                   for node in range(len(self._heights)))

    def edge_contains(self, node : int, height : float) -> bool:
        """
        Whether a point at 'height' lies on the edge above 'node'. The edge
        above the root extends to infinity.
        """
        if height < self._heights[node]:
            return False
        par = self._parents[node]
        return par == -1 or height < self._heights[par]

    def edge_at(self, node : int, height : float) -> int:
        """
        Walk up from 'node' to the node whose edge contains 'height'.

        Args:
            node (int): Starting node.
            height (float): A height at or above that of 'node'.
        Returns:
            int: The ancestor (or 'node' itself) whose edge contains 'height'.
        """
        if height < self._heights[node]:
            raise ClonalFrameError(f"Height {height} lies below node {node}")
        while not self.edge_contains(node, height):
            node = self._parents[node]
        return node

    def set_height(self, node : int, height : float) -> None:
        """
        Move 'node' to a new height, keeping it strictly between its children
        and its parent.

        Raises:
            ClonalFrameError: If the new height breaks the node ordering.
        """
        self.check_height(node, height)
        self._heights[node] = float(height)

    def check_height(self, node : int, height : float) -> None:
        for child in self._children[node]:
            if self._heights[child] >= height:
                raise ClonalFrameError(f"Height {height} is not above child \
                                         {child} of node {node}")
        par = self._parents[node]
        if par != -1 and height >= self._heights[par]:
            raise ClonalFrameError(f"Height {height} is not below the parent \
                                     of node {node}")

    def events(self) -> list[Event]:
        """
        Clonal frame events sorted by height (ties broken by node index), each
        carrying the number of lineages in the interval directly above it.

        Returns:
            list[Event]: The sorted events.
        """
        order = sorted(range(len(self._heights)),
                       key = lambda node : (self._heights[node], node))
        events : list[Event] = []
        k = 0
        for node in order:
            if self._children[node]:
                k -= len(self._children[node]) - 1
                ev_type = EventType.COALESCENCE
            else:
                k += 1
                ev_type = EventType.SAMPLE
            events.append(Event(self._heights[node], ev_type, k, node))
        return events

    def lineages_at(self, height : float) -> list[int]:
        """
        Nodes whose edges cross 'height'.
        """
        return [node for node in range(len(self._heights))
                if self.edge_contains(node, height)]

    def postorder(self) -> list[int]:
        order = []
        stack = [(self.root(), False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                order.append(node)
            else:
                stack.append((node, True))
                for child in reversed(self._children[node]):
                    stack.append((child, False))
        return order

    def geometry(self) -> tuple:
        """
        Hashable snapshot of the clonal frame (topology and heights).
        """
        return (tuple(self._parents), tuple(self._heights))

    def newick(self) -> str:
        """
        Plain Newick string (branch lengths from heights) of the clonal frame.
        """
        def help(node : int) -> str:
            name = self._names[node] or ""
            if not self._children[node]:
                label = name
            else:
                label = "(" + ",".join(help(c) for c in self._children[node]) \
                        + ")" + name
            if self._parents[node] == -1:
                return label
            return f"{label}:{self.branch_length(node)!r}"
        return help(self.root()) + ";"

    def copy(self) -> ClonalFrame:
        cf = ClonalFrame()
        cf._heights = list(self._heights)
        cf._parents = list(self._parents)
        cf._children = [list(kids) for kids in self._children]
        cf._names = list(self._names)
        return cf

###########################
#### CONVERSION GRAPH ####
###########################

class ConversionGraph:
    """
    Clonal frame + ordered set of loci + conversions tagged to those loci.
    This is the single source of truth for an ACG.

    Every mutation bumps a version counter (per locus for conversion edits,
    global for clonal frame edits) and sets the dirty flag. Derived views
    (regions, events) are recomputed lazily when their version is stale.
    """

    def __init__(self, clonal_frame : ClonalFrame, loci : list[Locus]) -> None:
        """
        Args:
            clonal_frame (ClonalFrame): A valid clonal frame. It is owned by
                                        the graph from here on.
            loci (list[Locus]): The loci of the analysis, in genome order.
        Returns:
            N/A
        Raises:
            ConversionGraphError: If two loci share a name or no loci are
                                  given.
        """
        clonal_frame.validate()
        if len(loci) == 0:
            raise ConversionGraphError("A conversion graph needs a locus")

        self._cf : ClonalFrame = clonal_frame
        self._loci : dict[str, Locus] = {}
        for locus in loci:
            if locus.name in self._loci:
                raise ConversionGraphError(f"Duplicate locus name \
                                             '{locus.name}'")
            self._loci[locus.name] = locus

        self._conversions : dict[str, list[Conversion]] = {
            name : [] for name in self._loci}
        self._next_id : int = 0
        self._ids : set[int] = set()

        self._locus_versions : dict[str, int] = {name : 0
                                                 for name in self._loci}
        self._cf_version : int = 0
        self._dirty_loci : set[str] = set(self._loci)
        self._cf_dirty : bool = True

        self._region_cache : dict[str, tuple[int, list[Region]]] = {}
        self._event_cache : tuple[int, list[Event]] | None = None
        self._partitioner = RegionPartitioner()

        self._log : list[GraphEdit] = []

    ##### Accessors #####

    def get_clonal_frame(self) -> ClonalFrame:
        return self._cf

    def get_loci(self) -> list[Locus]:
        return list(self._loci.values())

    def get_locus(self, name : str) -> Locus:
        try:
            return self._loci[name]
        except KeyError:
            raise ConversionGraphError(f"No locus named '{name}'") from None

    def has_locus(self, locus : Locus) -> bool:
        return self._loci.get(locus.name) == locus

    def get_conversions(self, locus : Locus = None) -> list[Conversion]:
        """
        Conversions of one locus ordered by (start site, id), or of every
        locus (in locus order) when 'locus' is None.
        """
        if locus is None:
            return [conv for name in self._loci
                    for conv in self.get_conversions(self._loci[name])]
        self._require_locus(locus)
        return sorted(self._conversions[locus.name],
                      key = lambda c : (c.start_site, c.id))

    def get_conversions_by_height(self, locus : Locus) -> list[Conversion]:
        """
        Conversions of one locus ordered by (departure height, id).
        """
        self._require_locus(locus)
        return sorted(self._conversions[locus.name],
                      key = lambda c : (c.departure_height, c.id))

    def conversion_count(self, locus : Locus = None) -> int:
        if locus is None:
            return sum(len(convs) for convs in self._conversions.values())
        self._require_locus(locus)
        return len(self._conversions[locus.name])

    def contains(self, conv : Conversion) -> bool:
        return any(c is conv for c in self._conversions[conv.locus.name]) \
            if conv.locus.name in self._conversions else False

    def clonal_frame_events(self) -> list[Event]:
        if self._event_cache is None or \
                self._event_cache[0] != self._cf_version:
            self._event_cache = (self._cf_version, self._cf.events())
        return list(self._event_cache[1])

    def clonal_frame_length(self) -> float:
        return self._cf.total_length()

    def total_sequence_length(self) -> int:
        return sum(locus.site_count for locus in self._loci.values())

    def get_regions(self, locus : Locus) -> list[Region]:
        """
        Regions of 'locus', recomputed only when the locus has changed since
        they were last derived.

        Args:
            locus (Locus): A locus of this graph.
        Returns:
            list[Region]: Contiguous regions covering the locus in site order.
        """
        self._require_locus(locus)
        version = self._locus_versions[locus.name]
        cached = self._region_cache.get(locus.name)
        if cached is None or cached[0] != version:
            regions = self._partitioner.partition(
                locus, self._conversions[locus.name])
            cached = (version, regions)
            self._region_cache[locus.name] = cached
        return list(cached[1])

    ##### Validation #####

    def check_conversion(self, conv : Conversion) -> None:
        """
        Check that 'conv' could live in this graph.

        Args:
            conv (Conversion): A conversion.
        Returns:
            N/A
        Raises:
            InvalidConversion: Describing the first violation found.
        """
        if not self.has_locus(conv.locus):
            raise InvalidConversion(f"Locus '{conv.locus.name}' is not part \
                                      of this graph")
        if conv.start_site < 0 or conv.end_site >= conv.locus.site_count:
            raise InvalidConversion(f"Site interval [{conv.start_site}, \
                                      {conv.end_site}] is outside locus \
                                      '{conv.locus.name}'")
        if conv.start_site > conv.end_site:
            raise InvalidConversion(f"Start site {conv.start_site} is after \
                                      end site {conv.end_site}")
        if not conv.departure_height < conv.arrival_height:
            raise InvalidConversion(f"Departure height \
                                      {conv.departure_height} is not below \
                                      arrival height {conv.arrival_height}")

        cf = self._cf
        for node in (conv.departure_node, conv.arrival_node):
            if not cf.in_range(node):
                raise InvalidConversion(f"Unknown clonal frame node {node}")

        if cf.is_root(conv.departure_node):
            raise InvalidConversion("Conversions cannot depart from above the\
                                     clonal frame root")
        if not cf.edge_contains(conv.departure_node, conv.departure_height):
            raise InvalidConversion(f"Departure height \
                                      {conv.departure_height} is not on the \
                                      edge above node {conv.departure_node}")
        if not cf.edge_contains(conv.arrival_node, conv.arrival_height):
            raise InvalidConversion(f"Arrival height {conv.arrival_height} is \
                                      not on the edge above node \
                                      {conv.arrival_node}")

    def check_consistency(self) -> None:
        """
        Check every conversion against the current clonal frame.

        Raises:
            PartitionInconsistency: If some conversion no longer resolves to a
                                    clonal frame edge (e.g. after an unrepaired
                                    node height edit).
        """
        for conv in self.get_conversions():
            try:
                self.check_conversion(conv)
            except InvalidConversion as err:
                raise PartitionInconsistency(f"{conv!r} is unresolved: \
                                               {err.message}") from err

    def is_valid(self) -> bool:
        try:
            self._cf.validate()
            self.check_consistency()
        except ConversionGraphError:
            return False
        return True

    ##### Mutation #####

    def add_conversion(self, conv : Conversion) -> Conversion:
        """
        Insert a conversion. On failure the graph is unchanged.

        Args:
            conv (Conversion): A conversion not already in this graph.
        Returns:
            Conversion: 'conv', with its id assigned.
        Raises:
            InvalidConversion: If 'conv' is structurally impossible or already
                               in the graph.
        """
        if self.contains(conv):
            raise InvalidConversion(f"{conv!r} is already in the graph")
        self.check_conversion(conv)
        self._record(AddConversionEdit(conv))
        return conv

    def remove_conversion(self, conv : Conversion) -> None:
        """
        Remove a conversion held by this graph.

        Raises:
            InvalidConversion: If 'conv' is not in this graph.
        """
        if not self.contains(conv):
            raise InvalidConversion(f"{conv!r} is not in the graph")
        self._record(RemoveConversionEdit(conv))

    def update_conversion(self, conv : Conversion, **changes : Any) -> None:
        """
        Change one or more fields of a held conversion (any of
        Conversion.FIELDS). On failure the conversion is unchanged.

        Raises:
            InvalidConversion: If 'conv' is not in this graph, a field name is
                               unknown, or the result is invalid.
        """
        if not self.contains(conv):
            raise InvalidConversion(f"{conv!r} is not in the graph")
        unknown = set(changes) - set(Conversion.FIELDS)
        if unknown:
            raise InvalidConversion(f"Unknown conversion fields: \
                                      {sorted(unknown)}")

        candidate = conv.copy()
        for attr, value in changes.items():
            setattr(candidate, attr, value)
        # Normalize types the same way the constructor does
        candidate = Conversion(*candidate.state())
        self.check_conversion(candidate)
        self._record(UpdateConversionEdit(conv, conv.state(),
                                          candidate.state()))

    def set_node_height(self, node : int, height : float) -> None:
        """
        Move a clonal frame node. Conversions attached near the node may be
        left unresolved; check_consistency reports that state.

        Raises:
            ClonalFrameError: If the new height breaks the clonal frame.
        """
        if not self._cf.in_range(node):
            raise ClonalFrameError(f"Unknown clonal frame node {node}")
        self._cf.check_height(node, height)
        self._record(NodeHeightEdit(node, self._cf.get_height(node),
                                    float(height)))

    ##### Edit primitives (used by GraphEdit subclasses only) #####

    def _insert(self, conv : Conversion) -> None:
        # Keep a preassigned id (e.g. from a parsed graph) unless it clashes
        if conv.id is None or conv.id in self._ids:
            conv.id = self._next_id
        self._next_id = max(self._next_id, conv.id + 1)
        self._ids.add(conv.id)
        self._conversions[conv.locus.name].append(conv)
        self._touch_locus(conv.locus.name)

    def _detach(self, conv : Conversion) -> None:
        convs = self._conversions[conv.locus.name]
        for idx, other in enumerate(convs):
            if other is conv:
                del convs[idx]
                break
        self._ids.discard(conv.id)
        self._touch_locus(conv.locus.name)

    def _restate(self, conv : Conversion, state : tuple) -> None:
        old_locus = conv.locus
        self._detach(conv)
        conv.set_state(state)
        self._ids.add(conv.id)
        self._conversions[conv.locus.name].append(conv)
        self._touch_locus(conv.locus.name)
        self._touch_locus(old_locus.name)

    def _move_node(self, node : int, height : float) -> None:
        self._cf.set_height(node, height)
        self._cf_version += 1
        self._cf_dirty = True
        for name in self._loci:
            self._touch_locus(name, structural = False)

    def _touch_locus(self, name : str, structural : bool = True) -> None:
        if structural:
            self._locus_versions[name] += 1
        self._dirty_loci.add(name)

    def _record(self, edit : GraphEdit) -> None:
        edit.apply(self)
        self._log.append(edit)

    def _require_locus(self, locus : Locus) -> None:
        if not self.has_locus(locus):
            raise ConversionGraphError(f"Locus '{locus.name}' is not part of \
                                         this graph")

    ##### Edit log #####

    def checkpoint(self) -> int:
        """
        Mark the current state. Pass the marker to rollback() to return to it.

        Returns:
            int: The checkpoint marker.
        """
        return len(self._log)

    def rollback(self, marker : int = 0) -> None:
        """
        Undo, newest first, every edit recorded after 'marker'.

        Args:
            marker (int, optional): A marker returned by checkpoint(). Defaults
                                    to the oldest uncommitted state.
        Returns:
            N/A
        """
        if marker < 0 or marker > len(self._log):
            raise ConversionGraphError(f"Invalid checkpoint marker {marker}")
        while len(self._log) > marker:
            self._log.pop().undo(self)

    def commit(self) -> None:
        """
        Accept every recorded edit. They can no longer be rolled back.
        """
        self._log.clear()

    def pending_edits(self) -> int:
        return len(self._log)

    ##### Dirty tracking #####

    def is_dirty(self) -> bool:
        return self._cf_dirty or bool(self._dirty_loci)

    def dirty_loci(self) -> list[Locus]:
        return [self._loci[name] for name in self._loci
                if name in self._dirty_loci]

    def locus_version(self, locus : Locus) -> int:
        self._require_locus(locus)
        return self._locus_versions[locus.name]

    def cf_version(self) -> int:
        return self._cf_version

    def mark_clean(self) -> None:
        self._dirty_loci.clear()
        self._cf_dirty = False

    ##### Conversions to other formats #####

    def to_extended_newick(self) -> str:
        from .ExtendedNewick import ExtendedNewickWriter
        return ExtendedNewickWriter().write(self)

    @staticmethod
    def from_extended_newick(text : str, loci : list[Locus]) -> ConversionGraph:
        from .ExtendedNewick import ExtendedNewickParser
        return ExtendedNewickParser(loci).parse(text)

    def to_networkx(self) -> nx.MultiDiGraph:
        """
        Export as a networkx multigraph. Clonal frame edges point from parent
        to child; conversion edges point from the arrival edge's node to the
        departure edge's node and carry the conversion's attributes.

        Returns:
            nx.MultiDiGraph: The exported graph.
        """
        G = nx.MultiDiGraph()
        cf = self._cf
        for node in range(cf.node_count()):
            G.add_node(node, height = cf.get_height(node),
                       name = cf.get_name(node))
        for node in range(cf.node_count()):
            par = cf.get_parent(node)
            if par != -1:
                G.add_edge(par, node, kind = "clonal",
                           length = cf.branch_length(node))
        for conv in self.get_conversions():
            G.add_edge(conv.arrival_node, conv.departure_node,
                       kind = "conversion", id = conv.id,
                       locus = conv.locus.name, start = conv.start_site,
                       end = conv.end_site,
                       departure_height = conv.departure_height,
                       arrival_height = conv.arrival_height)
        return G

    def copy(self) -> ConversionGraph:
        """
        Independent copy (clonal frame and conversions, ids preserved). The
        edit log is not copied.
        """
        new_graph = ConversionGraph(self._cf.copy(), self.get_loci())
        for conv in self.get_conversions():
            new_graph._conversions[conv.locus.name].append(conv.copy())
            new_graph._ids.add(conv.id)
        new_graph._next_id = self._next_id
        return new_graph

    def __repr__(self) -> str:
        return (f"ConversionGraph(leaves={len(self._cf.leaves())}, "
                f"loci={list(self._loci)}, "
                f"conversions={self.conversion_count()})")
