#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- ACGPy --
##  Library for Inference over Ancestral Conversion Graphs
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##############################################################################

"""
ACGPy - Ancestral Conversion Graph Python Library

Bayesian inference of bacterial recombination (gene conversion) histories:
the conversion graph model, its coalescent prior, and the sequence likelihood
over marginal trees.
"""

# Core data structures
from .ConversionGraph import (
    ConversionGraph,
    ClonalFrame,
    Conversion,
    Locus,
    Event,
    EventType,
    ConversionGraphError,
    InvalidConversion,
    ClonalFrameError,
    PartitionInconsistency
)
from .Regions import Region, RegionPartitioner
from .MarginalTree import MarginalTree, MarginalTreeBuilder

# Data
from .Alphabet import Alphabet, AlphabetError, DNA, RNA
from .Alignment import Alignment, AlignmentError

# Parsing and I/O
from .ExtendedNewick import (
    ExtendedNewickWriter,
    ExtendedNewickParser,
    ExtendedNewickError,
    clonal_frame_from_newick
)
from .Logger import Logger, graph_statistics, read_tree_log

# Models
from .PopulationModels import (
    PopulationFunction,
    ConstantPopulation,
    ExponentialGrowth,
    PopulationModelError
)
from .GTR import GTR, HKY, K80, F81, JC, SubstitutionModelError
from .Coalescent import CoalescentWithGeneConversion, NumericDomainError
from .Likelihood import SequenceLikelihoodEngine, felsenstein_log_likelihood
from .Simulator import ACGSimulator, SimulationError

# Scoring and model assembly
from .ScoringStrategy import (
    ScoringStrategy,
    FullRecomputeScoring,
    RegionCachedScoring,
    CompositeScoring
)
from .ModelBuilder import (
    ModelBuilder,
    BuiltModel,
    BuildPhase,
    BuildContext,
    BuildError,
    GraphPhase,
    DataPhase,
    ParameterPhase,
    PopulationPhase,
    SubstitutionPhase,
    ScoringPhase,
    ValidationPhase,
    CustomPhase
)

__version__ = "1.0.0"
__author__ = "Mark Kessler"
