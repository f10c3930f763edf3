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
Design - [ ]

Simulation of conversion graphs under the coalescent with gene conversion,
for chain initialization and sampler validation.

The clonal frame is a (possibly serially sampled) Kingman coalescent under
the population function. Tracts are laid down by the same two state point
process that CoalescentWithGeneConversion scores, departure points are uniform
over the clonal frame, and each recombinant lineage coalesces back into the
clonal frame at the coalescent rate.
"""

from __future__ import annotations
import math
import random
from typing import TYPE_CHECKING, Union
import numpy as np

from .ConversionGraph import ClonalFrame, Conversion, ConversionGraph

if TYPE_CHECKING:
    from .ConversionGraph import Locus
    from .PopulationModels import PopulationFunction

#########################
#### EXCEPTION CLASS ####
#########################

class SimulationError(Exception):
    def __init__(self, message = "Conversion graph simulation error"):
        self.message = message
        super().__init__(self.message)


class ACGSimulator:
    """
    Draws conversion graphs (and pieces of them) at random.
    """

    def __init__(self,
                 population : PopulationFunction,
                 rho : float,
                 delta : float,
                 loci : list[Locus],
                 allow_same_edge_coalescence : bool = True,
                 rng : Union[np.random.Generator, None] = None) -> None:
        """
        Args:
            population (PopulationFunction): Effective population size N(t).
            rho (float): Conversion rate parameter, rho >= 0.
            delta (float): Expected tract length, delta >= 1.
            loci (list[Locus]): Loci of the simulated graphs.
            allow_same_edge_coalescence (bool, optional): Whether recombinant
                lineages may coalesce into the edge they left. Defaults to
                True.
            rng (Union[np.random.Generator, None], optional): Random number
                generator. A freshly seeded one is made if None.
        Returns:
            N/A
        Raises:
            SimulationError: On invalid parameters.
        """
        if rho < 0:
            raise SimulationError(f"rho must be non-negative, got {rho}")
        if delta < 1:
            raise SimulationError(f"delta must be at least 1, got {delta}")
        if not loci:
            raise SimulationError("At least one locus is needed")

        self.population = population
        self.rho = float(rho)
        self.delta = float(delta)
        self.loci = list(loci)
        self.allow_same_edge_coalescence = allow_same_edge_coalescence

        if rng is not None:
            self.rng : np.random.Generator = rng
        else:
            seed : int = random.randint(0, 10000)
            self.rng : np.random.Generator = np.random.default_rng(seed)

    ##### Clonal frame #####

    def simulate_clonal_frame(self,
                              leaves : int | list[str],
                              sample_heights : list[float] = None) \
                              -> ClonalFrame:
        """
        Kingman coalescent genealogy of the given samples.

        Args:
            leaves (int | list[str]): Number of samples, or their names.
            sample_heights (list[float], optional): Sampling time of each
                leaf. Defaults to all 0 (contemporaneous samples).
        Returns:
            ClonalFrame: The simulated clonal frame.
        """
        names = [f"t{i}" for i in range(leaves)] if isinstance(leaves, int) \
                else list(leaves)
        if len(names) < 2:
            raise SimulationError("A clonal frame needs at least 2 leaves")
        if sample_heights is None:
            sample_heights = [0.0] * len(names)
        if len(sample_heights) != len(names):
            raise SimulationError("One sample height per leaf is needed")

        cf = ClonalFrame()
        pending = sorted(range(len(names)), key = lambda i : sample_heights[i])
        leaf_idx = {}
        for i in range(len(names)):
            leaf_idx[i] = cf.add_node(sample_heights[i], names[i])

        active : list[int] = []
        t = sample_heights[pending[0]]
        while pending or len(active) > 1:
            while pending and sample_heights[pending[0]] <= t:
                active.append(leaf_idx[pending.pop(0)])

            k = len(active)
            next_sample = sample_heights[pending[0]] if pending else math.inf
            if k < 2:
                t = next_sample
                continue

            x = self.rng.exponential() / (0.5 * k * (k - 1))
            t_coal = self.population.integral_inverse(t, x)
            if t_coal >= next_sample:
                # No coalescence before the next sample joins
                t = next_sample
                continue

            pair = self.rng.choice(k, size = 2, replace = False)
            children = [active[pair[0]], active[pair[1]]]
            parent = cf.add_node(t_coal, children = children)
            active = [a for a in active if a not in children] + [parent]
            t = t_coal

        cf.validate()
        return cf

    ##### Tracts #####

    def draw_affected_region(self, graph : ConversionGraph) \
            -> tuple[Locus, int, int, float]:
        """
        Draw a locus and tract for a new conversion, as a conversion
        creation proposal would. Site 0 of every locus is delta times as
        likely a start as any other site, tract lengths are geometric with
        mean delta, and tracts are truncated at the locus end.

        Args:
            graph (ConversionGraph): Supplies the loci.
        Returns:
            tuple[Locus, int, int, float]: locus, start site, end site and the
                                           log probability of the draw.
        """
        loci = graph.get_loci()
        alpha = graph.total_sequence_length() + len(loci) * (self.delta - 1)

        u = self.rng.random() * alpha
        for locus in loci:
            span = self.delta - 1 + locus.site_count
            if u < span:
                if u < self.delta:
                    start = 0
                else:
                    start = int(math.ceil(u - self.delta))
                break
            u -= span
        else:
            raise SimulationError("Affected region draw fell through every \
                                   locus")

        end = start + int(self.rng.geometric(1.0 / self.delta)) - 1
        end = min(end, locus.site_count - 1)
        return locus, start, end, self.affected_region_log_prob(graph, locus,
                                                                start, end)

    def affected_region_log_prob(self, graph : ConversionGraph, locus : Locus,
                                 start : int, end : int) -> float:
        """
        Log probability that draw_affected_region produces this tract.
        """
        alpha = graph.total_sequence_length() + \
                len(graph.get_loci()) * (self.delta - 1)
        log_p = math.log(self.delta / alpha) if start == 0 \
                else math.log(1.0 / alpha)

        log_stay = math.log1p(-1.0 / self.delta) if self.delta > 1 \
                   else -math.inf
        if end == locus.site_count - 1:
            n_stay = locus.site_count - 1 - start
            log_p += n_stay * log_stay if n_stay > 0 else 0.0
        else:
            n_stay = end - start
            log_p += (n_stay * log_stay if n_stay > 0 else 0.0) - \
                     math.log(self.delta)
        return log_p

    def simulate_footprint(self, cf_length : float) \
            -> list[tuple[Locus, int, int]]:
        """
        Lay tracts along the concatenated loci with the point process of the
        prior: the genome starts in the clonal frame with probability
        pStartCF, every clonal frame site starts a tract at the next site with
        probability pRec, and every tract site ends the tract with probability
        1/delta. A tract running past the end of its locus is cut there.

        Args:
            cf_length (float): Total branch length of the clonal frame.
        Returns:
            list[tuple[Locus, int, int]]: (locus, start, end) per tract, in
                                          genome order.
        """
        total_len = sum(locus.site_count for locus in self.loci)
        p_rec = 0.5 * self.rho * cf_length / total_len
        p_tract_end = 1.0 / self.delta
        if p_rec >= 1:
            raise SimulationError(f"Per site conversion probability {p_rec} \
                                    is not below 1")
        p_start_cf = 1.0 / (p_rec / p_tract_end + 1.0)

        offsets = np.cumsum([0] + [locus.site_count for locus in self.loci])
        tracts = []
        pos = 0
        in_tract = self.rng.random() >= p_start_cf
        while pos < total_len:
            if in_tract:
                which = int(np.searchsorted(offsets, pos, side = "right")) - 1
                locus = self.loci[which]
                length = int(self.rng.geometric(p_tract_end))
                end = min(pos + length - 1, offsets[which + 1] - 1)
                tracts.append((locus, int(pos - offsets[which]),
                               int(end - offsets[which])))
                pos = pos + length
                in_tract = False
            else:
                if p_rec == 0:
                    break
                pos += int(self.rng.geometric(p_rec))
                in_tract = True
        return tracts

    ##### Conversion edges #####

    def draw_departure(self, cf : ClonalFrame) -> tuple[int, float]:
        """
        Point drawn uniformly over the total branch length of 'cf'.
        """
        u = self.rng.random() * cf.total_length()
        for node in range(cf.node_count()):
            length = cf.branch_length(node)
            if cf.is_root(node) or length == 0:
                continue
            if u < length:
                return node, cf.get_height(node) + u
            u -= length
        # Rounding pushed u past the last edge
        node = max((n for n in range(cf.node_count()) if not cf.is_root(n)),
                   key = cf.branch_length)
        return node, cf.get_height(node)

    def draw_arrival(self, graph : ConversionGraph, node1 : int,
                     height1 : float) -> tuple[int, float]:
        """
        Let the recombinant lineage leaving edge 'node1' at 'height1'
        coalesce back into the clonal frame.

        Args:
            graph (ConversionGraph): Supplies the clonal frame.
            node1 (int): Departure edge.
            height1 (float): Departure height.
        Returns:
            tuple[int, float]: Arrival edge and height.
        """
        cf = graph.get_clonal_frame()
        events = graph.clonal_frame_events()
        old_coalescence = cf.get_height(cf.get_parent(node1))

        idx = 0
        while idx < len(events) - 1 and events[idx + 1].height < height1:
            idx += 1

        x = self.rng.exponential()
        height2 = None
        while height2 is None:
            time_a = max(events[idx].height, height1)
            if idx < len(events) - 1:
                time_b = events[idx + 1].height
                k = events[idx].lineage_count
                if not self.allow_same_edge_coalescence and \
                        events[idx].height < old_coalescence:
                    k -= 1
            else:
                time_b = math.inf
                k = 1

            if k > 0:
                t = self.population.integral_inverse(time_a, x / k)
                if t < time_b:
                    height2 = t
                    break
                x -= k * self.population.integral(time_a, time_b)
            idx += 1

        candidates = cf.lineages_at(height2)
        if not self.allow_same_edge_coalescence and len(candidates) > 1:
            candidates = [node for node in candidates if node != node1]
        node2 = candidates[int(self.rng.integers(0, len(candidates)))]
        return node2, height2

    def draw_conversion(self, graph : ConversionGraph, locus : Locus = None,
                        start : int = None, end : int = None) -> Conversion:
        """
        A random conversion for 'graph'. When no tract is given one is drawn
        with draw_affected_region.
        """
        if locus is None:
            locus, start, end, _ = self.draw_affected_region(graph)
        cf = graph.get_clonal_frame()
        node1, height1 = self.draw_departure(cf)
        node2, height2 = self.draw_arrival(graph, node1, height1)
        return Conversion(locus, start, end, node1, height1, node2, height2)

    def simulate(self,
                 leaves : int | list[str] = None,
                 clonal_frame : ClonalFrame = None,
                 sample_heights : list[float] = None) -> ConversionGraph:
        """
        Simulate a full conversion graph.

        Args:
            leaves (int | list[str], optional): Samples for a simulated clonal
                                                frame.
            clonal_frame (ClonalFrame, optional): Fixed clonal frame to use
                                                  instead.
            sample_heights (list[float], optional): Leaf sampling times.
        Returns:
            ConversionGraph: A graph with an empty edit log.
        """
        if clonal_frame is None:
            if leaves is None:
                raise SimulationError("Give either leaves or a clonal frame")
            clonal_frame = self.simulate_clonal_frame(leaves, sample_heights)

        graph = ConversionGraph(clonal_frame, self.loci)
        for locus, start, end in self.simulate_footprint(
                clonal_frame.total_length()):
            graph.add_conversion(self.draw_conversion(graph, locus, start, end))
        graph.commit()
        return graph
