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

Sequence likelihood of a conversion graph.

Every region of every locus has its own marginal tree, and the sites of a
region evolve along that tree alone. The total log likelihood is therefore
the sum over loci (graph order) and regions (site order) of a Felsenstein
pruning likelihood restricted to the region's alignment columns, with
identical columns collapsed into weighted patterns.
"""

from __future__ import annotations
import concurrent.futures as cf
import math
import warnings
from typing import TYPE_CHECKING, Callable
import numpy as np

from .Alignment import AlignmentError
from .Coalescent import NumericDomainError
from .MarginalTree import MarginalTreeBuilder
from .ScoringStrategy import RegionCachedScoring

if TYPE_CHECKING:
    from .Alignment import Alignment
    from .ConversionGraph import ConversionGraph, Locus
    from .GTR import GTR
    from .MarginalTree import MarginalTree
    from .Regions import Region


def felsenstein_log_likelihood(tree : MarginalTree,
                               alignment : Alignment,
                               model : GTR,
                               start : int = 0,
                               end : int = None) -> float:
    """
    Plain pruning likelihood of sites [start, end] on 'tree', computed one
    column at a time with no pattern compression, scaling or caching.

    Args:
        tree (MarginalTree): A tree whose leaf names are alignment taxa.
        alignment (Alignment): The data.
        model (GTR): Substitution model.
        start (int, optional): First site. Defaults to 0.
        end (int, optional): Last site (inclusive). Defaults to the last site
                             of the alignment.
    Returns:
        float: The log likelihood of the sites.
    """
    if end is None:
        end = alignment.site_count() - 1
    freqs = model.frequencies()
    order = tree.postorder()
    root = tree.root()

    total = 0.0
    for site in range(start, end + 1):
        partial = {}
        for node in order:
            if tree.is_leaf(node):
                code = alignment.state(tree.get_name(node), site)
                partial[node] = alignment.alphabet.partials(code)
            else:
                vec = np.ones(model.state_count())
                for child in tree.get_children(node):
                    P = model.transition_probabilities(
                        tree.branch_length(child))
                    vec = vec * (P @ partial[child])
                partial[node] = vec
        site_lik = float(np.dot(freqs, partial[root]))
        if site_lik <= 0:
            return float("-inf")
        total += math.log(site_lik)
    return total


class SequenceLikelihoodEngine(RegionCachedScoring):
    """
    Total sequence log likelihood of a conversion graph, with incremental
    recomputation.

    A locus whose conversions, clonal frame and substitution parameters are
    unchanged since the last call reuses its cached total. Otherwise each
    region is looked up by the clonal frame geometry, the substitution
    parameters, its bounds and the state of its conversions. Two generations
    of region values are kept, so returning to the previous state (a rejected
    proposal) is served from cache.
    """

    def __init__(self,
                 graph : ConversionGraph,
                 alignments : dict[str, Alignment],
                 substitution_model : GTR,
                 builder : MarginalTreeBuilder = None,
                 threads : int = 1) -> None:
        """
        Args:
            graph (ConversionGraph): The graph to score.
            alignments (dict[str, Alignment]): Locus name to alignment.
            substitution_model (GTR): Provides transition probabilities and
                                      root frequencies.
            builder (MarginalTreeBuilder, optional): Marginal tree builder.
                Defaults to one that allows same edge coalescence.
            threads (int, optional): Worker threads used for region
                                     computations. Defaults to 1.
        Returns:
            N/A
        Raises:
            AlignmentError: If a locus has no alignment, the alignment length
                            differs from the locus length, or a clonal frame
                            leaf has no sequence.
        """
        super().__init__()
        self.graph = graph
        self.alignments = alignments
        self.model = substitution_model
        self.builder = builder if builder is not None \
                       else MarginalTreeBuilder()
        self.threads = max(1, int(threads))
        self._check_data()

    def _check_data(self) -> None:
        leaf_names = self.graph.get_clonal_frame().leaf_names()
        for locus in self.graph.get_loci():
            if locus.name not in self.alignments:
                raise AlignmentError(f"No alignment for locus '{locus.name}'")
            aln = self.alignments[locus.name]
            if aln.site_count() != locus.site_count:
                raise AlignmentError(f"Alignment for locus '{locus.name}' has\
                                       {aln.site_count()} sites, expected \
                                       {locus.site_count}")
            missing = [name for name in leaf_names if not aln.has_taxon(name)]
            if missing:
                raise AlignmentError(f"Taxa {missing} have no sequence in \
                                       locus '{locus.name}'")
            extra = set(aln.taxa()) - set(leaf_names)
            if extra:
                warnings.warn(f"Alignment of locus '{locus.name}' has taxa \
                                not in the clonal frame: {sorted(extra)}")

        unused = set(self.alignments) - {l.name for l in self.graph.get_loci()}
        if unused:
            warnings.warn(f"Alignments given for unknown loci: \
                            {sorted(unused)}")

    def score(self) -> float:
        return self.log_likelihood()

    def log_likelihood(self) -> float:
        """
        Total log likelihood of the current graph state. Sums run in locus
        order, then region order, whatever the number of threads.

        Returns:
            float: The log likelihood, -inf if some pattern has probability 0.
        Raises:
            PartitionInconsistency: If a marginal tree cannot be built.
            NumericDomainError: If a pattern likelihood is negative or NaN.
        """
        geometry = self.graph.get_clonal_frame().geometry()
        cf_version = self.graph.cf_version()
        model_key = self.model.parameter_key()

        totals = []
        for locus in self.graph.get_loci():
            stamp = (self.graph.locus_version(locus), cf_version, model_key)
            entry = self.get_locus_entry(locus)
            if entry is not None and entry["stamp"] == stamp:
                totals.append(entry["total"])
            else:
                totals.append(self._refresh_locus(locus, stamp, geometry,
                                                  entry))

        total = 0.0
        for value in totals:
            total += value

        self.graph.mark_clean()
        self.mark_clean()
        return total

    def locus_log_likelihood(self, locus : Locus) -> float:
        """
        Log likelihood contribution of one locus (refreshing it if needed).
        """
        stamp = (self.graph.locus_version(locus), self.graph.cf_version(),
                 self.model.parameter_key())
        entry = self.get_locus_entry(locus)
        if entry is not None and entry["stamp"] == stamp:
            return entry["total"]
        return self._refresh_locus(locus, stamp,
                                   self.graph.get_clonal_frame().geometry(),
                                   entry)

    def _refresh_locus(self, locus : Locus, stamp : tuple, geometry : tuple,
                       entry : dict | None) -> float:
        regions = self.graph.get_regions(locus)
        current = entry["regions"] if entry is not None else {}
        previous = entry["previous"] if entry is not None else {}

        keys = [self._region_key(geometry, stamp[2], region)
                for region in regions]
        values = []
        for key in keys:
            if key in current:
                values.append(current[key])
            else:
                values.append(previous.get(key))

        missing = [idx for idx, value in enumerate(values) if value is None]
        computed = self._map(lambda idx : self.region_log_likelihood(
                                 regions[idx]), missing)
        for idx, value in zip(missing, computed):
            values[idx] = value

        total = 0.0
        for value in values:
            total += value

        self.set_locus_entry(locus, {"stamp" : stamp,
                                     "total" : total,
                                     "regions" : dict(zip(keys, values)),
                                     "previous" : current})
        return total

    def _map(self, func : Callable, items : list) -> list:
        if self.threads == 1 or len(items) < 2:
            return [func(item) for item in items]
        with cf.ThreadPoolExecutor(max_workers = self.threads) as executor:
            return list(executor.map(func, items))

    @staticmethod
    def _region_key(geometry : tuple, model_key : tuple,
                    region : Region) -> tuple:
        convs = tuple((c.departure_node, c.departure_height, c.arrival_node,
                       c.arrival_height) for c in region.conversions)
        return (geometry, model_key, region.locus.name, region.start_site,
                region.end_site, convs)

    def region_log_likelihood(self, region : Region) -> float:
        """
        Log likelihood of the sites of one region on its marginal tree.
        """
        tree = self.builder.build(self.graph, region)
        return self.tree_log_likelihood(tree,
                                        self.alignments[region.locus.name],
                                        region.start_site, region.end_site)

    def tree_log_likelihood(self, tree : MarginalTree, alignment : Alignment,
                            start : int, end : int) -> float:
        """
        Pattern compressed pruning likelihood with per node rescaling.

        Args:
            tree (MarginalTree): Genealogy of the sites.
            alignment (Alignment): The locus alignment.
            start (int): First site.
            end (int): Last site (inclusive).
        Returns:
            float: sum over patterns of weight * log(pattern likelihood).
        """
        leaves = tree.leaves()
        patterns, weights = alignment.patterns(
            start, end, [tree.get_name(leaf) for leaf in leaves])
        row = {leaf : idx for idx, leaf in enumerate(leaves)}
        n_patterns = patterns.shape[1]

        log_scale = np.zeros(n_patterns)
        partials = {}
        for node in tree.postorder():
            if tree.is_leaf(node):
                partials[node] = alignment.alphabet.partials(patterns[row[node]])
                continue
            part = np.ones((n_patterns, self.model.state_count()))
            for child in tree.get_children(node):
                P = self.model.transition_probabilities(
                    tree.branch_length(child))
                part = part * (partials.pop(child) @ P.T)
            scale = part.max(axis = 1)
            positive = scale > 0
            part[positive] /= scale[positive, None]
            log_scale[positive] += np.log(scale[positive])
            partials[node] = part

        site_lik = partials[tree.root()] @ self.model.frequencies()
        if np.any(np.isnan(site_lik)) or np.any(site_lik < 0):
            raise NumericDomainError("Pattern likelihood is negative or NaN")
        if np.any(site_lik == 0):
            return float("-inf")
        return float(np.dot(weights, np.log(site_lik) + log_scale))
