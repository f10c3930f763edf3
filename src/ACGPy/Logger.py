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
Module that records conversion graph states during sampling, and writes them
out as a NEXUS tree log and a tab separated trace of summary statistics.

Author : Mark Kessler
Last Edit : 10/19/26
First Included in Version : 1.0.0
Docs   - [x]
Tests  - [x]
Design - [ ]
"""

from __future__ import annotations
import math
import networkx as nx

from . import Settings
from .ConversionGraph import ConversionGraph, Locus
from .ExtendedNewick import ExtendedNewickError, ExtendedNewickParser


def graph_statistics(graph : ConversionGraph) -> dict[str, float]:
    """
    Summary statistics of a conversion graph state.

    Args:
        graph (ConversionGraph): A conversion graph.
    Returns:
        dict[str, float]: Conversion count, mean tract length, mean departure
                          and arrival heights (NaN without conversions),
                          clonal frame height and total length.
    """
    convs = graph.get_conversions()
    cf = graph.get_clonal_frame()
    count = len(convs)
    stats = {"conversions" : float(count),
             "mean_tract_length" : math.nan,
             "mean_departure_height" : math.nan,
             "mean_arrival_height" : math.nan,
             "cf_height" : cf.get_height(cf.root()),
             "cf_length" : cf.total_length()}
    if count:
        stats["mean_tract_length"] = sum(c.site_count() for c in convs) / count
        stats["mean_departure_height"] = \
            sum(c.departure_height for c in convs) / count
        stats["mean_arrival_height"] = \
            sum(c.arrival_height for c in convs) / count
    return stats


class Logger:
    """
    Class that logs sampled conversion graphs, for later summary or to resume
    a chain from its last state.

    Every logged state keeps its extended Newick string, its summary
    statistics, any extra values (log densities, parameters) and a networkx
    snapshot for inspection.
    """

    def __init__(self, id : int, loci : list[Locus]) -> None:
        """
        Initialize a logger instance with an integer ID value (on user to make
        it unique).

        Args:
            id (int): A unique id for this logger instance.
            loci (list[Locus]): Loci of the logged graphs, written to the tree
                                log preamble.
        Returns:
            N/A
        """
        self.id : int = id
        self.loci : list[Locus] = list(loci)
        self.states : list[int] = []
        self.newicks : list[str] = []
        self.stats : list[dict[str, float]] = []
        self.networkx_objs : list[nx.MultiDiGraph] = []

    def log(self, graph : ConversionGraph, state : int = None,
            **values : float) -> None:
        """
        Log a graph, optionally with the chain state number and extra values
        for the trace (e.g. posterior=-1234.5, rho=0.02).

        Args:
            graph (ConversionGraph): A conversion graph.
            state (int, optional): Chain state number. Defaults to the number
                                   of states logged so far.
            **values (float): Extra trace columns.
        Returns:
            N/A
        """
        if state is None:
            state = len(self.states)
        stats = graph_statistics(graph)
        stats.update(values)

        self.states.append(state)
        self.newicks.append(graph.to_extended_newick())
        self.stats.append(stats)
        self.networkx_objs.append(graph.to_networkx())

    def __len__(self) -> int:
        return len(self.states)

    def last_graph(self) -> ConversionGraph:
        """
        Rebuild the most recently logged graph.

        Returns:
            ConversionGraph: The graph.
        Raises:
            IndexError: If nothing has been logged.
        """
        if not self.newicks:
            raise IndexError("Nothing has been logged")
        return ConversionGraph.from_extended_newick(self.newicks[-1],
                                                    self.loci)

    def columns(self) -> list[str]:
        """
        Trace column names, in first-seen order.
        """
        cols : list[str] = []
        for stats in self.stats:
            for key in stats:
                if key not in cols:
                    cols.append(key)
        return cols

    def to_nexus(self, filename : str) -> None:
        """
        Write the tree log. The loci are listed ahead of the trees so that
        the graphs can be parsed back without any other input.

        Args:
            filename (str): Output path.
        Returns:
            N/A
        """
        loci = " ".join(f"{locus.name}:{locus.site_count}"
                        for locus in self.loci)
        with open(filename, "w") as f:
            f.write("#nexus\n")
            f.write("begin trees;\n")
            f.write(f"\tloci {loci};\n")
            for state, newick in zip(self.states, self.newicks):
                f.write(f"\ttree STATE_{state} = {newick}\n")
            f.write("end;\n")

    def to_trace(self, filename : str) -> None:
        """
        Write one tab separated row of statistics per logged state.

        Args:
            filename (str): Output path.
        Returns:
            N/A
        """
        cols = self.columns()
        with open(filename, "w") as f:
            f.write("\t".join(["state"] + cols) + "\n")
            for state, stats in zip(self.states, self.stats):
                row = [str(state)]
                for col in cols:
                    value = stats.get(col, math.nan)
                    row.append(f"{value:.{Settings.LOG_PRECISION}g}")
                f.write("\t".join(row) + "\n")


def read_tree_log(filename : str) -> tuple[list[Locus], list[ConversionGraph]]:
    """
    Read a tree log written by Logger.to_nexus.

    Args:
        filename (str): Path to the tree log.
    Returns:
        tuple[list[Locus], list[ConversionGraph]]: The loci, and the logged
                                                   graphs in file order.
    Raises:
        ExtendedNewickError: If the file is not a tree log of this form.
    """
    loci : list[Locus] = None
    newicks : list[str] = []
    with open(filename) as f:
        for line in f:
            line = line.strip()
            if line.lower().startswith("loci "):
                loci = []
                for entry in line[5:].rstrip(";").split():
                    name, count = entry.rsplit(":", 1)
                    loci.append(Locus(name, int(count)))
            elif line.lower().startswith("tree "):
                newicks.append(line.split("=", 1)[1].strip())

    if loci is None:
        raise ExtendedNewickError(f"No loci line in tree log '{filename}'")
    parser = ExtendedNewickParser(loci)
    return loci, [parser.parse(text) for text in newicks]
