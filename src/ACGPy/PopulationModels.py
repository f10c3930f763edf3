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

Effective population size functions N(t), with t measured backwards in time.
The coalescent machinery only needs N(t) and the intensity
integral(a, b) = int_a^b dt / N(t); the simulator also needs the inverse of
the intensity.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import math
import numpy as np
from scipy import integrate, optimize

#########################
#### EXCEPTION CLASS ####
#########################

class PopulationModelError(Exception):
    def __init__(self, message = "Error in population model"):
        self.message = message
        super().__init__(self.message)


class PopulationFunction(ABC):
    """
    Abstract population size function. Subclasses provide pop_size(); the
    intensity and its inverse default to numerical quadrature and root
    finding, and should be overridden when a closed form exists.
    """

    @abstractmethod
    def pop_size(self, t : float) -> float:
        """
        Args:
            t (float): Time before the present.
        Returns:
            float: N(t), strictly positive.
        """
        pass

    def integral(self, a : float, b : float) -> float:
        """
        Coalescent intensity between two times.

        Args:
            a (float): Lower time.
            b (float): Upper time, b >= a.
        Returns:
            float: int_a^b dt / N(t).
        """
        self._check_interval(a, b)
        if a == b:
            return 0.0
        value, _ = integrate.quad(lambda t : 1.0 / self.pop_size(t), a, b)
        return value

    def integral_inverse(self, a : float, x : float) -> float:
        """
        Time b >= a at which integral(a, b) equals x.

        Args:
            a (float): Lower time.
            x (float): Target intensity, x >= 0.
        Returns:
            float: The time b.
        """
        if x < 0:
            raise PopulationModelError(f"Negative intensity {x}")
        if x == 0:
            return a
        upper = a + max(1.0, self.pop_size(a)) * x
        while self.integral(a, upper) < x:
            upper = a + 2 * (upper - a)
            if not np.isfinite(upper):
                raise PopulationModelError(f"Intensity {x} is never reached\
                                              after time {a}")
        return optimize.brentq(lambda b : self.integral(a, b) - x, a, upper)

    def _check_interval(self, a : float, b : float) -> None:
        if b < a:
            raise PopulationModelError(f"Integral bounds out of order: \
                                         [{a}, {b}]")


class ConstantPopulation(PopulationFunction):
    """
    N(t) = N0.
    """

    def __init__(self, pop_size : float = 1.0) -> None:
        if pop_size <= 0:
            raise PopulationModelError(f"Population size must be positive, \
                                         got {pop_size}")
        self.N0 = float(pop_size)

    def pop_size(self, t : float) -> float:
        return self.N0

    def integral(self, a : float, b : float) -> float:
        self._check_interval(a, b)
        return (b - a) / self.N0

    def integral_inverse(self, a : float, x : float) -> float:
        if x < 0:
            raise PopulationModelError(f"Negative intensity {x}")
        return a + x * self.N0


class ExponentialGrowth(PopulationFunction):
    """
    N(t) = N0 * exp(-r t). A positive growth rate means the population has
    been growing towards the present.
    """

    def __init__(self, pop_size : float, growth_rate : float) -> None:
        if pop_size <= 0:
            raise PopulationModelError(f"Population size must be positive, \
                                         got {pop_size}")
        self.N0 = float(pop_size)
        self.r = float(growth_rate)

    def pop_size(self, t : float) -> float:
        return self.N0 * math.exp(-self.r * t)

    def integral(self, a : float, b : float) -> float:
        self._check_interval(a, b)
        if self.r == 0:
            return (b - a) / self.N0
        return (math.exp(self.r * b) - math.exp(self.r * a)) / \
               (self.N0 * self.r)

    def integral_inverse(self, a : float, x : float) -> float:
        if x < 0:
            raise PopulationModelError(f"Negative intensity {x}")
        if self.r == 0:
            return a + x * self.N0
        arg = math.exp(self.r * a) + x * self.N0 * self.r
        if arg <= 0:
            # A shrinking-backwards population has finite total intensity
            raise PopulationModelError(f"Intensity {x} is never reached \
                                         after time {a}")
        return math.log(arg) / self.r
