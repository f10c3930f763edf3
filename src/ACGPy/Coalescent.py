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

Approximation to the coalescent with gene conversion.

The log density of a conversion graph is the sum of three parts:

- the coalescent density of the clonal frame,
- for every conversion, the density of its departure point (uniform over the
  clonal frame) and of its arrival height (the recombinant lineage coalescing
  back into the clonal frame),
- the density of the tract footprint: all loci are concatenated into one
  genome over which tract starts and ends form a two-state point process with
  per-site initiation probability pRec and termination probability 1/delta.
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING
from scipy.special import xlogy

from .ConversionGraph import EventType
from .ScoringStrategy import FullRecomputeScoring

if TYPE_CHECKING:
    from .ConversionGraph import ConversionGraph, Conversion
    from .PopulationModels import PopulationFunction

#########################
#### EXCEPTION CLASS ####
#########################

class NumericDomainError(Exception):
    """
    A quantity that must be strictly positive (or a parameter that must lie
    in a given range) is not. This is a modeling invariant violation rather
    than a zero probability outcome.
    """
    def __init__(self, message = "Quantity outside its numeric domain"):
        self.message = message
        super().__init__(self.message)


NEG_INF = float("-inf")


class CoalescentWithGeneConversion(FullRecomputeScoring):
    """
    Prior density over conversion graphs.
    """

    def __init__(self,
                 graph : ConversionGraph,
                 population : PopulationFunction,
                 rho : float,
                 delta : float,
                 allow_same_edge_coalescence : bool = True) -> None:
        """
        Args:
            graph (ConversionGraph): The graph to score.
            population (PopulationFunction): Effective population size N(t).
            rho (float): Conversion rate parameter, rho >= 0.
            delta (float): Expected tract length, delta >= 1.
            allow_same_edge_coalescence (bool, optional): Whether the
                recombinant lineage may coalesce back into the edge it left.
                Defaults to True.
        Returns:
            N/A
        """
        super().__init__()
        self.graph = graph
        self.population = population
        self.rho = float(rho)
        self.delta = float(delta)
        self.allow_same_edge_coalescence = allow_same_edge_coalescence

    def set_parameters(self, rho : float = None, delta : float = None) -> None:
        if rho is not None:
            self.rho = float(rho)
        if delta is not None:
            self.delta = float(delta)
        self._dirty = True

    def score(self) -> float:
        return self.log_prior()

    def log_prior(self) -> float:
        """
        Total log prior density of the current graph state.

        Returns:
            float: The log density, -inf for zero support configurations.
        Raises:
            PartitionInconsistency: If some conversion does not resolve to a
                                    clonal frame edge.
            NumericDomainError: On invalid parameters or population sizes.
        """
        self.graph.check_consistency()
        self._check_parameters()

        logp = self.clonal_frame_log_p()
        for conv in self.graph.get_conversions():
            logp += self.conversion_log_p(conv)
        logp += self.footprint_log_p()

        self._last_score = logp
        self.mark_clean()
        return logp

    def clonal_frame_log_p(self) -> float:
        """
        Coalescent density of the clonal frame. For consecutive events the
        no-coalescence probability of the k lineages between them is
        accumulated, plus a population size term at every coalescence.
        """
        events = self.graph.clonal_frame_events()
        logp = 0.0
        for ev_a, ev_b in zip(events[:-1], events[1:]):
            k = ev_a.lineage_count
            logp += -0.5 * k * (k - 1) * self._integral(ev_a.height,
                                                        ev_b.height)
            if ev_b.type == EventType.COALESCENCE:
                logp += -math.log(1.0 / self._pop_size(ev_b.height))
        return logp

    def conversion_log_p(self, conv : Conversion) -> float:
        """
        Density of one conversion edge: uniform placement of the departure
        point over the clonal frame, then the recombinant lineage avoiding
        coalescence with the clonal frame lineages until the arrival height,
        and coalescing there.

        Args:
            conv (Conversion): A conversion of the graph.
        Returns:
            float: The log density of the edge, -inf for a lineage that
                   rejoins its own edge when that is disallowed.
        """
        if not self.allow_same_edge_coalescence and \
                conv.arrival_node == conv.departure_node:
            return float("-inf")

        cf = self.graph.get_clonal_frame()
        events = self.graph.clonal_frame_events()
        h1, h2 = conv.departure_height, conv.arrival_height

        cf_length = self.graph.clonal_frame_length()
        if not cf_length > 0:
            raise NumericDomainError(f"Clonal frame length {cf_length} \
                                       leaves no room for conversions")
        logp = -math.log(cf_length)

        start = 0
        while start < len(events) - 1 and events[start + 1].height < h1:
            start += 1

        # Below the departure edge's parent the lineage it left is not a
        # coalescence target when same edge coalescence is disallowed.
        old_coalescence = cf.get_height(cf.get_parent(conv.departure_node))

        idx = start
        while idx < len(events) and events[idx].height < h2:
            time_a = max(events[idx].height, h1)
            if idx < len(events) - 1:
                time_b = min(h2, events[idx + 1].height)
                k = events[idx].lineage_count
                if not self.allow_same_edge_coalescence and \
                        events[idx].height < old_coalescence:
                    k -= 1
            else:
                time_b = h2
                k = 1
            logp += -k * self._integral(time_a, time_b)
            idx += 1

        logp += -math.log(self._pop_size(h2))
        return logp

    def footprint_log_p(self) -> float:
        """
        Log probability of where the tracts fall on the concatenated genome.

        Returns:
            float: The log probability, -inf when tracts overlap or abut
                   (the point process cannot start a tract without a clonal
                   frame site in between) or when rho is zero and conversions
                   are present.
        """
        total_len = self.graph.total_sequence_length()
        cf_length = self.graph.clonal_frame_length()

        p_rec = 0.5 * self.rho * cf_length / total_len
        p_tract_end = 1.0 / self.delta
        if p_rec >= 1.0:
            raise NumericDomainError(f"Per site conversion probability \
                                       {p_rec} is not below 1")
        p_start_cf = 1.0 / (p_rec / p_tract_end + 1.0)

        tracts = self.global_tracts()
        if not tracts:
            return math.log(p_start_cf) + float(xlogy(total_len - 1,
                                                      1.0 - p_rec))
        if p_rec == 0.0:
            return NEG_INF

        first_start = tracts[0][0]
        if first_start > 0:
            logp = math.log(p_start_cf) + float(xlogy(first_start - 1,
                                                      1.0 - p_rec))
        else:
            logp = math.log(1.0 - p_start_cf) - math.log(p_rec)

        for idx, (start, end) in enumerate(tracts):
            logp += math.log(p_rec) + float(xlogy(end - start,
                                                  1.0 - p_tract_end))
            if idx < len(tracts) - 1:
                next_start = tracts[idx + 1][0]
                if next_start <= end + 1:
                    return NEG_INF
                logp += math.log(p_tract_end) + \
                        float(xlogy(next_start - end - 2, 1.0 - p_rec))
            elif end < total_len - 1:
                logp += math.log(p_tract_end) + \
                        float(xlogy(total_len - end - 2, 1.0 - p_rec))
        return logp

    def global_tracts(self) -> list[tuple[int, int]]:
        """
        Every conversion's tract in concatenated genome coordinates (loci
        laid end to end in graph order), sorted by start site.
        """
        tracts = []
        offset = 0
        for locus in self.graph.get_loci():
            for conv in self.graph.get_conversions(locus):
                tracts.append((offset + conv.start_site,
                               offset + conv.end_site))
            offset += locus.site_count
        return tracts

    def _check_parameters(self) -> None:
        if not math.isfinite(self.rho) or self.rho < 0:
            raise NumericDomainError(f"rho must be a non-negative number, got\
                                       {self.rho}")
        if not math.isfinite(self.delta) or self.delta < 1:
            raise NumericDomainError(f"delta must be at least 1, got \
                                       {self.delta}")

    def _pop_size(self, t : float) -> float:
        size = self.population.pop_size(t)
        if not size > 0:
            raise NumericDomainError(f"Population size at time {t} is \
                                       {size}")
        return size

    def _integral(self, a : float, b : float) -> float:
        area = self.population.integral(a, b)
        if not area >= 0:
            raise NumericDomainError(f"Coalescent intensity on [{a}, {b}] is\
                                       {area}")
        return area
