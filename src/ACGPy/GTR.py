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

Time reversible nucleotide substitution models. The likelihood engine only
uses transition_probabilities(t) and frequencies().

SOURCES:

1) Tavare 1986 (GTR)

2) Kimura 1980 (K80)

3) Felsenstein 1981 (F81)

4) Hasegawa et al. 1985 (HKY85)

5) Jukes and Cantor 1969 (JC)
"""

import math
import warnings
import numpy as np
from scipy.linalg import expm

from . import Settings

#########################
#### EXCEPTION CLASS ####
#########################

class SubstitutionModelError(Exception):
    """
    Raised when a substitution model is given malformed parameters.
    """
    def __init__(self, message = "Unknown substitution model error") -> None:
        self.message = message
        super().__init__(self.message)

#############################
#### SUBSTITUTION MODELS ####
#############################

class GTR:
    """
    General time reversible model. Rates are given for the upper triangle of
    the exchangeability matrix in row order, i.e. for DNA
    [A<->C, A<->G, A<->T, C<->G, C<->T, G<->T]. Q is normalized to one
    expected substitution per unit time.
    """

    CACHE_LIMIT = 4096

    def __init__(self, base_freqs : list[float] | np.ndarray,
                       transitions : list[float] | np.ndarray,
                       states : int = 4) -> None:
        """
        Args:
            base_freqs (list[float] | np.ndarray): 'states' frequencies that
                                                   sum to 1.
            transitions (list[float] | np.ndarray): ('states'^2 - 'states') / 2
                                                    positive exchangeability
                                                    rates.
            states (int, optional): Number of states. Defaults to 4 (DNA).
        Raises:
            SubstitutionModelError: If either array is malformed.
        """
        self.states : int = states
        self.freqs : np.ndarray = np.asarray(base_freqs, dtype = np.double)\
                                    .flatten()
        self.trans : np.ndarray = np.asarray(transitions, dtype = np.double)\
                                    .flatten()
        self.is_valid(self.trans, self.freqs, self.states)
        self._cache : dict[float, np.ndarray] = {}
        self.Q = self.buildQ()

    def getQ(self) -> np.ndarray:
        return self.Q

    def set_hyperparams(self, params : dict[str, object]) -> None:
        """
        Change the base frequencies and/or rates and rebuild Q.

        Args:
            params (dict[str, object]): Keys limited to "base frequencies"
                                        and "transitions".
        Returns:
            N/A
        """
        if "transitions" in params:
            self.trans = np.asarray(params["transitions"],
                                    dtype = np.double).flatten()
        if "base frequencies" in params:
            self.freqs = np.asarray(params["base frequencies"],
                                    dtype = np.double).flatten()
        self.is_valid(self.trans, self.freqs, self.states)
        self.buildQ()

    def get_hyperparams(self) -> tuple[np.ndarray, np.ndarray]:
        return self.freqs, self.trans

    def parameter_key(self) -> tuple:
        """
        Hashable snapshot of the parameters. Two calls return equal keys
        exactly when the transition probabilities are the same.

        Returns:
            tuple: (model class name, base frequencies, rates)
        """
        return (type(self).__name__, tuple(self.freqs.tolist()),
                tuple(self.trans.tolist()))

    def state_count(self) -> int:
        return self.states

    def frequencies(self) -> np.ndarray:
        """
        Stationary distribution, used at the root of every tree.
        """
        return self.freqs

    def buildQ(self) -> np.ndarray:
        """
        Q[i][j] = r_ij * pi_j off the diagonal, rows summing to zero, scaled
        so that -sum_i pi_i Q[i][i] = 1.
        """
        Q = np.zeros((self.states, self.states), dtype = np.double)
        rates = iter(self.trans)
        for i in range(self.states):
            for j in range(i + 1, self.states):
                r = next(rates)
                Q[i][j] = r * self.freqs[j]
                Q[j][i] = r * self.freqs[i]

        np.fill_diagonal(Q, -Q.sum(axis = 1))
        norm = -np.dot(np.diag(Q), self.freqs)
        self.Q = Q / norm
        self._cache.clear()
        return self.Q

    def expt(self, t : float) -> np.ndarray:
        """
        Transition probability matrix e^(Qt). Results are memoized per branch
        length until the parameters change.

        Args:
            t (float): Branch length, t >= 0.
        Returns:
            np.ndarray: Row stochastic matrix P with P[i][j] = P(j | i, t).
        """
        if t < 0:
            raise SubstitutionModelError(f"Negative branch length {t}")
        P = self._cache.get(t)
        if P is None:
            if len(self._cache) >= GTR.CACHE_LIMIT:
                self._cache.clear()
            P = self._compute(t)
            self._cache[t] = P
        return P

    def transition_probabilities(self, t : float) -> np.ndarray:
        return self.expt(t)

    def _compute(self, t : float) -> np.ndarray:
        return expm(self.Q * t)

    def is_valid(self, transitions : np.ndarray, freqs : np.ndarray,
                 states : int) -> None:
        """
        Ensure frequencies and transitions are well formed.

        Raises:
            SubstitutionModelError: On a malformed array.
        """
        if len(freqs) != states or \
                not np.isclose(freqs.sum(), 1.0, atol = Settings.TOLERANCE) \
                or np.any(freqs <= 0):
            raise SubstitutionModelError("Base frequency list either does not \
                                          sum to 1, has a non-positive entry,\
                                          or is not of correct length")

        proper_len = ((states - 1) * states) // 2
        if len(transitions) != proper_len:
            raise SubstitutionModelError(f"Incorrect number of transition \
                                          rates. Got {len(transitions)}. \
                                          Expected {proper_len}!")
        if np.any(transitions <= 0):
            raise SubstitutionModelError("Transition rates must be positive")


class HKY(GTR):
    """
    For DNA only. Free base frequencies, one rate for transitions (A<->G and
    C<->T) that is 'kappa' times the common transversion rate.
    """

    def __init__(self, base_freqs : list | np.ndarray,
                 kappa : float) -> None:
        """
        Args:
            base_freqs (list | np.ndarray): 4 frequencies that sum to 1.
            kappa (float): Transition/transversion rate ratio, kappa > 0.
        """
        self.kappa = float(kappa)
        super().__init__(base_freqs, self._rates(self.kappa))

    @staticmethod
    def _rates(kappa : float) -> list[float]:
        return [1.0, kappa, 1.0, 1.0, kappa, 1.0]

    def set_hyperparams(self, params : dict[str, object]) -> None:
        """
        Args:
            params (dict[str, object]): Keys limited to "base frequencies"
                                        and "kappa".
        """
        if "kappa" in params:
            self.kappa = float(params["kappa"])
        super().set_hyperparams({
            "transitions" : self._rates(self.kappa),
            **{k : v for k, v in params.items() if k == "base frequencies"}})


class K80(HKY):
    """
    Kimura 2 parameter model: HKY with equal base frequencies.
    """

    def __init__(self, kappa : float) -> None:
        super().__init__([.25, .25, .25, .25], kappa)

    def set_hyperparams(self, params : dict[str, object]) -> None:
        if "base frequencies" in params:
            raise SubstitutionModelError("K80 base frequencies are fixed")
        super().set_hyperparams(params)


class F81(GTR):
    """
    Free base frequencies, all exchangeabilities equal.
    """

    def __init__(self, base_freqs : list[float] | np.ndarray) -> None:
        super().__init__(base_freqs, np.ones(6))

    def _compute(self, t : float) -> np.ndarray:
        # P(t) = e^{-bt} I + (1 - e^{-bt}) 1 pi^T, b the normalizing rate
        beta = 1.0 / (1.0 - np.dot(self.freqs, self.freqs))
        decay = math.exp(-beta * t)
        return decay * np.eye(self.states) + \
               (1.0 - decay) * np.tile(self.freqs, (self.states, 1))


class JC(F81):
    """
    Jukes Cantor: equal frequencies, equal rates. Closed form transition
    probabilities.
    """

    def __init__(self) -> None:
        super().__init__([.25, .25, .25, .25])

    def _compute(self, t : float) -> np.ndarray:
        decay = math.exp(-4.0 * t / 3.0)
        same = .25 + .75 * decay
        diff = .25 - .25 * decay
        P = np.full((4, 4), diff)
        np.fill_diagonal(P, same)
        return P

    def set_hyperparams(self, params : dict[str, object]) -> None:
        warnings.warn("Attempting to set parameters for the Jukes Cantor model.\
                       No parameters are needed for this model, and whatever\
                       operation was attempted will have no effect.")
