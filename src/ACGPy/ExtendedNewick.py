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

Extended Newick text form of a conversion graph, used for tree logs and
checkpoints.

The clonal frame is written as a Newick tree whose nodes carry
[&node=INDEX,height=H] comments. Conversion points are spliced into the
clonal frame edges, oldest last:

- a departure is a unary clade "(...)#cID[&departure=ID,height=H1]",
- an arrival is a clade "(...,#cID[&conv=ID,locus=L,start=S,end=E,...]:h2-h1)"
  whose second child is the conversion edge itself,
  annotated "[&arrival=ID,height=H2]".

Heights are read back from the comments, so a round trip is exact. Parsing
goes through Bio.Phylo.
"""

from __future__ import annotations
from io import StringIO
from typing import Any, TYPE_CHECKING
from Bio import Phylo
from Bio.Phylo.NewickIO import NewickError

from .ConversionGraph import (ClonalFrame, Conversion, ConversionGraph,
                              ConversionGraphError)

if TYPE_CHECKING:
    from .ConversionGraph import Locus

#########################
#### EXCEPTION CLASS ####
#########################

class ExtendedNewickError(Exception):
    def __init__(self, message = "Malformed extended Newick string"):
        self.message = message
        super().__init__(self.message)

_RESERVED = set(",=[]():;# ")

##########################
#### HELPER FUNCTIONS ####
##########################

def parse_comment(comment : str | None) -> dict[str, str]:
    """
    Turn a "&key=value,key=value" comment into a dictionary.

    Args:
        comment (str | None): A clade comment as stored by Bio.Phylo.
    Returns:
        dict[str, str]: Attribute name to raw value. Empty if no comment.
    """
    attrs : dict[str, str] = {}
    if not comment:
        return attrs
    body = comment.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1]
    body = body.lstrip("&")
    for entry in body.split(","):
        if not entry.strip():
            continue
        if "=" not in entry:
            raise ExtendedNewickError(f"Comment entry '{entry}' is not of \
                                        the form key=value")
        key, value = entry.split("=", 1)
        attrs[key.strip()] = value.strip()
    return attrs

def _check_label(label : str, what : str) -> None:
    if not label or any(char in _RESERVED for char in label):
        raise ExtendedNewickError(f"{what} '{label}' cannot be written to \
                                    extended Newick")

###############################
#### WRITER & PARSER ####
###############################

class ExtendedNewickWriter:
    """
    Serializes a ConversionGraph.
    """

    DEPARTURE = 0
    ARRIVAL = 1

    def write(self, graph : ConversionGraph) -> str:
        """
        Args:
            graph (ConversionGraph): The graph to write.
        Returns:
            str: The extended Newick string, ending with ';'.
        """
        cf = graph.get_clonal_frame()
        for leaf in cf.leaves():
            _check_label(cf.get_name(leaf), "Leaf name")
        for locus in graph.get_loci():
            _check_label(locus.name, "Locus name")

        markers : dict[int, list] = {node : []
                                     for node in range(cf.node_count())}
        for conv in graph.get_conversions():
            markers[conv.departure_node].append(
                (conv.departure_height, self.DEPARTURE, conv.id, conv))
            markers[conv.arrival_node].append(
                (conv.arrival_height, self.ARRIVAL, conv.id, conv))
        for points in markers.values():
            points.sort(key = lambda point : point[:3])

        return self._subtree(cf, cf.root(), markers) + ";"

    def _subtree(self, cf : ClonalFrame, node : int,
                 markers : dict[int, list]) -> str:
        height = cf.get_height(node)
        if cf.is_leaf(node):
            text = cf.get_name(node)
        else:
            text = "(" + ",".join(self._subtree(cf, child, markers)
                                  for child in cf.get_children(node)) + ")"
            name = cf.get_name(node)
            if name:
                _check_label(name, "Node name")
                text += name
        text += f"[&node={node},height={height!r}]"

        below = height
        for point_height, kind, _, conv in markers[node]:
            text += f":{point_height - below!r}"
            if kind == self.DEPARTURE:
                text = f"({text})#c{conv.id}[&departure={conv.id}," \
                       f"height={point_height!r}]"
            else:
                edge = (f"#c{conv.id}[&conv={conv.id},"
                        f"locus={conv.locus.name},"
                        f"start={conv.start_site},end={conv.end_site},"
                        f"height1={conv.departure_height!r},"
                        f"height2={conv.arrival_height!r}]"
                        f":{conv.arrival_height - conv.departure_height!r}")
                text = f"({text},{edge})[&arrival={conv.id}," \
                       f"height={point_height!r}]"
            below = point_height

        if not cf.is_root(node):
            text += f":{cf.get_height(cf.get_parent(node)) - below!r}"
        return text


class ExtendedNewickParser:
    """
    Rebuilds a ConversionGraph from its extended Newick form.
    """

    def __init__(self, loci : list[Locus]) -> None:
        """
        Args:
            loci (list[Locus]): The loci of the graph, in genome order.
                                Conversions refer to them by name.
        Returns:
            N/A
        """
        self.loci = list(loci)
        self._by_name = {locus.name : locus for locus in self.loci}

    def parse(self, text : str) -> ConversionGraph:
        """
        Args:
            text (str): An extended Newick string.
        Returns:
            ConversionGraph: An equivalent graph with an empty edit log.
        Raises:
            ExtendedNewickError: If the text is not a well formed extended
                                 Newick string for these loci.
        """
        try:
            tree = Phylo.read(StringIO(text.strip()), "newick")
        except (NewickError, ValueError) as err:
            raise ExtendedNewickError(f"Could not parse Newick: {err}") \
                from err

        self._nodes : dict[int, dict[str, Any]] = {}
        self._departures : dict[int, tuple[int, float]] = {}
        self._arrivals : dict[int, tuple[int, float]] = {}
        self._tracts : dict[int, dict[str, str]] = {}

        root = self._visit(tree.root, -1)

        count = len(self._nodes)
        if sorted(self._nodes) != list(range(count)):
            raise ExtendedNewickError("Clonal frame node indices are not \
                                        0..n-1")
        parents = [self._nodes[idx]["parent"] for idx in range(count)]
        heights = [self._nodes[idx]["height"] for idx in range(count)]
        names = [self._nodes[idx]["name"] for idx in range(count)]
        if parents[root] != -1:
            raise ExtendedNewickError("Root clade has a parent")

        try:
            cf = ClonalFrame.from_parent_list(parents, heights, names)
            graph = ConversionGraph(cf, self.loci)
            for conv_id in sorted(self._tracts):
                graph.add_conversion(self._conversion(conv_id))
        except ConversionGraphError as err:
            raise ExtendedNewickError(f"Parsed graph is invalid: \
                                        {err.message}") from err
        graph.commit()
        return graph

    def _visit(self, clade, parent : int) -> int:
        """
        Process 'clade' and return the clonal frame node at or below it.
        Marker clades sitting on an edge are skipped over, the edge belongs to
        the clonal frame node found beneath them.
        """
        attrs = parse_comment(clade.comment)

        if "departure" in attrs:
            if len(clade.clades) != 1:
                raise ExtendedNewickError("Departure marker must have exactly\
                                            one child")
            node = self._visit(clade.clades[0], parent)
            self._departures[int(attrs["departure"])] = \
                (node, float(attrs["height"]))
            return node

        if "arrival" in attrs:
            conv_id = int(attrs["arrival"])
            below = [c for c in clade.clades
                     if "conv" not in parse_comment(c.comment)]
            edges = [c for c in clade.clades
                     if "conv" in parse_comment(c.comment)]
            if len(below) != 1 or len(edges) != 1:
                raise ExtendedNewickError("Arrival marker must have one \
                                            clonal frame child and one \
                                            conversion edge")
            self._tracts[conv_id] = parse_comment(edges[0].comment)
            node = self._visit(below[0], parent)
            self._arrivals[conv_id] = (node, float(attrs["height"]))
            return node

        if "node" in attrs:
            node = int(attrs["node"])
            if node in self._nodes:
                raise ExtendedNewickError(f"Node index {node} appears twice")
            name = clade.name
            if clade.clades and name is None and clade.confidence is not None:
                # Bio.Phylo reads numeric internal labels as support values
                name = str(clade.confidence)
            self._nodes[node] = {"parent" : parent,
                                 "height" : float(attrs["height"]),
                                 "name" : name}
            for child in clade.clades:
                self._visit(child, node)
            return node

        raise ExtendedNewickError(f"Clade '{clade.name}' carries no node or \
                                    conversion annotation")

    def _conversion(self, conv_id : int) -> Conversion:
        tract = self._tracts[conv_id]
        if conv_id not in self._departures or conv_id not in self._arrivals:
            raise ExtendedNewickError(f"Conversion {conv_id} is missing its \
                                        departure or arrival point")
        try:
            locus = self._by_name[tract["locus"]]
        except KeyError:
            raise ExtendedNewickError(f"Conversion {conv_id} refers to an \
                                        unknown locus") from None

        dep_node, dep_height = self._departures[conv_id]
        arr_node, arr_height = self._arrivals[conv_id]
        conv = Conversion(locus, int(tract["start"]), int(tract["end"]),
                          dep_node, dep_height, arr_node, arr_height)
        conv.id = conv_id
        return conv


def clonal_frame_from_newick(text : str) -> ClonalFrame:
    """
    Build a clonal frame from a plain Newick string with branch lengths.
    Heights are measured back from the leaf furthest from the root, so
    non-ultrametric trees give serially sampled leaves. Leaves are numbered
    first, in the order they appear, then internal nodes in postorder.

    Args:
        text (str): A binary Newick tree, e.g. "((A:1,B:1):1,C:2);".
    Returns:
        ClonalFrame: The clonal frame.
    Raises:
        ExtendedNewickError: If the string cannot be parsed.
        ClonalFrameError: If the tree is not binary or has zero length edges.
    """
    try:
        tree = Phylo.read(StringIO(text.strip()), "newick")
    except (NewickError, ValueError) as err:
        raise ExtendedNewickError(f"Could not parse Newick: {err}") from err

    for clade in tree.find_clades():
        if clade is not tree.root and clade.branch_length is None:
            raise ExtendedNewickError("Every edge needs a branch length")
    depths = tree.depths()
    max_depth = max(depths.values())

    leaves = tree.get_terminals()
    internals = [c for c in tree.find_clades(order = "postorder")
                 if not c.is_terminal()]
    index = {}
    for clade in leaves + internals:
        index[id(clade)] = len(index)

    parents = [-1] * len(index)
    heights = [0.0] * len(index)
    names = [None] * len(index)
    for clade in leaves + internals:
        idx = index[id(clade)]
        heights[idx] = max_depth - depths[clade]
        names[idx] = clade.name
        for child in clade.clades:
            parents[index[id(child)]] = idx
    return ClonalFrame.from_parent_list(parents, heights, names)
