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

Library wide defaults. Model components take these as keyword defaults, so
changing a value here changes every model built afterwards.
"""

# Conversion rate parameter rho
DEFAULT_RHO : float = 0.0

# Expected conversion tract length, in sites
DEFAULT_DELTA : float = 100.0

# Whether a recombinant lineage may coalesce back into the clonal frame edge
# it departed from
ALLOW_SAME_EDGE_COALESCENCE : bool = True

# Worker threads for region likelihoods. 1 computes everything in the caller
THREADS : int = 1

# Absolute tolerance for floating point comparisons of frequencies and rates
TOLERANCE : float = 1e-9

# Significant digits of heights written to tree logs and traces
LOG_PRECISION : int = 17
