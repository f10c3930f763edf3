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
Tests  - [ ]
Design - [x]

Scoring strategies for conversion graphs. The two densities an MCMC driver
needs have different computational patterns:

1. The coalescent prior is cheap and global: it is recomputed from scratch on
   every call.

2. The sequence likelihood decomposes over loci and regions, so
   contributions of unchanged regions can be cached and reused.

Both are pure functions of the graph state they are bound to, so strategies
are scored without arguments and can be combined freely.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from .ConversionGraph import Locus


class ScoringStrategy(ABC):
    """
    Abstract base class for graph scoring strategies.
    """

    def __init__(self) -> None:
        self._cache: dict[Any, Any] = {}
        self._dirty: bool = True

    @abstractmethod
    def score(self) -> float:
        """
        Compute the log density for the current graph state.

        Returns:
            float: The log density.
        """
        pass

    @abstractmethod
    def supports_caching(self) -> bool:
        """
        Whether this strategy reuses partial results between calls.

        Args:
            N/A
        Returns:
            bool: True if caching is supported, False otherwise.
        """
        pass

    def invalidate(self, affected_loci: list[Locus] = None) -> None:
        """
        Drop cached computations, either for the given loci or (when None, or
        when caching is unsupported) for everything.

        Args:
            affected_loci (list[Locus], optional): Loci whose cached values
                                                   should be dropped.
        Returns:
            N/A
        """
        if affected_loci is None or not self.supports_caching():
            self._cache.clear()
            self._dirty = True
        else:
            for locus in affected_loci:
                self._cache.pop(locus.name, None)

    def is_dirty(self) -> bool:
        return self._dirty

    def mark_clean(self) -> None:
        self._dirty = False


class FullRecomputeScoring(ScoringStrategy):
    """
    Base class for strategies that recompute everything on every call.
    """

    def __init__(self) -> None:
        super().__init__()
        self._last_score: float = None

    def supports_caching(self) -> bool:
        return False

    def last_score(self) -> float | None:
        """
        The most recently computed score, or None.
        """
        return self._last_score


class RegionCachedScoring(ScoringStrategy):
    """
    Base class for strategies whose score is a sum of per-locus, per-region
    contributions that can be cached independently.

    The cache is keyed by locus name; each entry is whatever the subclass
    needs to decide whether the locus total is still current.
    """

    def supports_caching(self) -> bool:
        return True

    def get_locus_entry(self, locus: Locus) -> Any:
        return self._cache.get(locus.name)

    def set_locus_entry(self, locus: Locus, value: Any) -> None:
        self._cache[locus.name] = value


class CompositeScoring(ScoringStrategy):
    """
    Combines several strategies, e.g. prior + likelihood into a posterior.
    """

    def __init__(self,
                 strategies: list[ScoringStrategy],
                 combiner: Callable[[list[float]], float] = sum) -> None:
        """
        Args:
            strategies (list[ScoringStrategy]): Component strategies.
            combiner (Callable): Combines the component scores. Defaults to
                                 sum, i.e. a product of densities.
        Returns:
            N/A
        """
        super().__init__()
        self.strategies = strategies
        self.combiner = combiner

    def score(self) -> float:
        scores = []
        for strategy in self.strategies:
            value = strategy.score()
            scores.append(value)
            # No point scoring the rest once the state has zero support
            if value == float("-inf"):
                return value
        return self.combiner(scores)

    def supports_caching(self) -> bool:
        return any(s.supports_caching() for s in self.strategies)

    def invalidate(self, affected_loci: list[Locus] = None) -> None:
        for strategy in self.strategies:
            strategy.invalidate(affected_loci)
        self._dirty = True
