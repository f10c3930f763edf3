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

Partitioning of a locus into regions. A region is a maximal run of sites that
is covered by exactly the same set of conversions, and therefore shares a
single marginal tree.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .ConversionGraph import Locus, Conversion


@dataclass(frozen = True)
class Region:
    """
    Sites [start_site, end_site] (inclusive) of 'locus'. 'conversions' holds
    every conversion covering the region, ordered by ascending departure
    height (ties by conversion id).
    """
    locus : Locus
    start_site : int
    end_site : int
    conversions : tuple

    def site_count(self) -> int:
        return self.end_site - self.start_site + 1

    def contains_site(self, site : int) -> bool:
        return self.start_site <= site <= self.end_site

    def is_clonal_frame(self) -> bool:
        return len(self.conversions) == 0

    def __repr__(self) -> str:
        ids = [conv.id for conv in self.conversions]
        return (f"Region({self.locus.name}, [{self.start_site}, "
                f"{self.end_site}], conversions={ids})")


class RegionPartitioner:
    """
    Derives the ordered regions of a locus from the conversions on it.
    """

    def partition(self,
                  locus : Locus,
                  conversions : Iterable[Conversion]) -> list[Region]:
        """
        Split 'locus' at every conversion boundary.

        The breakpoints are 0, the locus length, and the start site and one
        past the end site of every conversion. A single sweep over the sorted
        breakpoints maintains the set of covering conversions, so the cost is
        O(c log c) for c conversions and at most 2c + 1 regions are produced.

        Args:
            locus (Locus): The locus to partition.
            conversions (Iterable[Conversion]): The conversions on 'locus'.
        Returns:
            list[Region]: Contiguous, non-overlapping regions covering the
                          locus, in site order.
        """
        convs = list(conversions)

        # Tie-break key: graph-assigned id, else position in the input
        order_key = {}
        starting = defaultdict(list)
        ending = defaultdict(list)
        breakpoints = {0, locus.site_count}

        for idx, conv in enumerate(convs):
            tie = conv.id if conv.id is not None else idx
            order_key[idx] = (conv.departure_height, tie)
            starting[conv.start_site].append(idx)
            ending[conv.end_site + 1].append(idx)
            breakpoints.add(conv.start_site)
            breakpoints.add(conv.end_site + 1)

        breakpoints = sorted(breakpoints)

        regions : list[Region] = []
        active : set[int] = set()
        for left, right in zip(breakpoints[:-1], breakpoints[1:]):
            for idx in ending.get(left, ()):
                active.discard(idx)
            for idx in starting.get(left, ()):
                active.add(idx)

            covering = sorted(active, key = lambda i : order_key[i])
            regions.append(Region(locus, left, right - 1,
                                  tuple(convs[i] for i in covering)))
        return regions

    def region_at(self, regions : list[Region], site : int) -> Region:
        """
        Find the region of a partition that contains 'site' (binary search).
        """
        lo, hi = 0, len(regions) - 1
        while lo <= hi:
            mid = (lo + hi) // 2
            if site < regions[mid].start_site:
                hi = mid - 1
            elif site > regions[mid].end_site:
                lo = mid + 1
            else:
                return regions[mid]
        raise IndexError(f"Site {site} is not covered by the given regions")
