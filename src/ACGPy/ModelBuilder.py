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

Phase based assembly of a posterior over conversion graphs.

A model is built by running a list of phases in order against a shared
BuildContext. Each phase stores what it makes under a well known key, and
later phases read what earlier ones stored:

- GraphPhase: the conversion graph ("graph")
- DataPhase: one alignment per locus ("data")
- ParameterPhase: rho, delta and any other values ("parameters")
- PopulationPhase: the effective population size function ("population")
- SubstitutionPhase: the substitution model ("substitution_model")
- ScoringPhase: prior, likelihood and posterior strategies
- ValidationPhase: checks over the finished context
- CustomPhase: any one-off step

Any failure inside a phase surfaces as a BuildError naming the phase.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, TYPE_CHECKING
from collections import OrderedDict

from . import Settings
from .Coalescent import CoalescentWithGeneConversion
from .Likelihood import SequenceLikelihoodEngine
from .MarginalTree import MarginalTreeBuilder
from .ScoringStrategy import CompositeScoring, ScoringStrategy

if TYPE_CHECKING:
    from .Alignment import Alignment
    from .ConversionGraph import ConversionGraph, Locus
    from .GTR import GTR
    from .PopulationModels import PopulationFunction


class BuildContext:
    """
    Accumulates built components during the model construction process.
    """

    def __init__(self) -> None:
        self._components: OrderedDict[str, Any] = OrderedDict()
        self._metadata: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._components[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._components.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._components

    def require(self, key: str) -> Any:
        """
        Get a component, raising an error if it doesn't exist.

        Args:
            key (str): Component identifier.
        Returns:
            Any: The component.
        Raises:
            BuildError: If the component doesn't exist.
        """
        if key not in self._components:
            raise BuildError(f"Required component '{key}' not found. "
                             f"Available: {list(self._components.keys())}")
        return self._components[key]

    def set_meta(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    def all_components(self) -> dict[str, Any]:
        return dict(self._components)


class BuildPhase(ABC):
    """
    Abstract base class for model build phases.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Human-readable name for this phase.
        """
        pass

    @abstractmethod
    def execute(self, context: BuildContext) -> None:
        """
        Execute this build phase.

        Args:
            context (BuildContext): The build context with previously
                                    built components.
        Returns:
            N/A
        Raises:
            BuildError: If the phase fails.
        """
        pass

    def prerequisites(self) -> list[str]:
        """
        Component keys that must be in the context before this phase runs.
        """
        return []

    def validate_prerequisites(self, context: BuildContext) -> None:
        for key in self.prerequisites():
            if not context.has(key):
                raise BuildError(f"Prerequisite '{key}' not found", self.name)


class BuildError(Exception):
    """
    Exception raised during model building.
    """

    def __init__(self, message: str, phase: str = None) -> None:
        """
        Args:
            message (str): Error message.
            phase (str, optional): Phase where error occurred.
        Returns:
            N/A
        """
        if phase:
            message = f"[{phase}] {message}"
        self.message = message
        super().__init__(message)
        self.phase = phase


class ModelBuilder:
    """
    Phase-based model builder.

    Usage:
        model = ModelBuilder() \\
                    .add_phase(GraphPhase(graph)) \\
                    .add_phase(DataPhase(alignments)) \\
                    .add_phase(ParameterPhase({"rho": 0.02, "delta": 300})) \\
                    .add_phase(PopulationPhase(ConstantPopulation(1.0))) \\
                    .add_phase(SubstitutionPhase(JC())) \\
                    .add_phase(ScoringPhase()) \\
                    .build()
        model.log_posterior()
    """

    def __init__(self) -> None:
        self._phases: list[BuildPhase] = []
        self._built: bool = False

    def add_phase(self, phase: BuildPhase) -> 'ModelBuilder':
        self._phases.append(phase)
        return self

    def insert_phase(self, index: int, phase: BuildPhase) -> 'ModelBuilder':
        self._phases.insert(index, phase)
        return self

    def phase_names(self) -> list[str]:
        return [phase.name for phase in self._phases]

    def build(self) -> 'BuiltModel':
        """
        Execute all phases and build the model.

        Args:
            N/A
        Returns:
            BuiltModel: The constructed model.
        Raises:
            BuildError: If any phase fails.
        """
        context = BuildContext()

        for phase in self._phases:
            try:
                phase.validate_prerequisites(context)
                phase.execute(context)
            except BuildError:
                raise
            except Exception as e:
                raise BuildError(str(e), phase=phase.name) from e

        self._built = True
        return BuiltModel(context)


class BuiltModel:
    """
    The result of model building: a graph with its prior and likelihood,
    ready to be scored by a sampler.
    """

    SUBSTITUTION_PARAMETERS = ("kappa", "base frequencies", "transitions")

    def __init__(self, context: BuildContext) -> None:
        self._context = context
        self._graph: ConversionGraph = context.get("graph")
        self._prior: CoalescentWithGeneConversion = context.get("prior")
        self._likelihood: SequenceLikelihoodEngine = context.get("likelihood")
        self._scoring_strategy: ScoringStrategy = \
            context.get("scoring_strategy")
        self._parameters: dict[str, Any] = context.get("parameters", {})

    @property
    def graph(self) -> ConversionGraph:
        return self._graph

    @property
    def prior(self) -> CoalescentWithGeneConversion:
        return self._prior

    @property
    def likelihood(self) -> SequenceLikelihoodEngine:
        return self._likelihood

    @property
    def scoring_strategy(self) -> ScoringStrategy:
        return self._scoring_strategy

    def get_component(self, key: str, default: Any = None) -> Any:
        return self._context.get(key, default)

    def get_parameter(self, name: str, default: Any = None) -> Any:
        return self._parameters.get(name, default)

    def set_parameter(self, name: str, value: Any) -> None:
        """
        Update a parameter value. rho and delta are passed on to the prior,
        substitution parameters ("kappa", "base frequencies", "transitions")
        to the substitution model. Cached likelihoods are keyed on the
        substitution parameters, so a prior-only change keeps them all.

        Args:
            name (str): Parameter name.
            value (Any): New value.
        Returns:
            N/A
        Raises:
            BuildError: If a substitution parameter is set on a model built
                        without a substitution model.
        """
        if name in BuiltModel.SUBSTITUTION_PARAMETERS:
            model = self._context.get("substitution_model")
            if model is None:
                raise BuildError(f"No substitution model to take '{name}'")
            model.set_hyperparams({name: value})
        elif name in ("rho", "delta") and self._prior is not None:
            self._prior.set_parameters(**{name: value})
        self._parameters[name] = value

    def log_prior(self) -> float:
        """
        Log prior density of the current graph.

        Raises:
            BuildError: If no prior was configured.
        """
        if self._prior is None:
            raise BuildError("No prior configured")
        return self._prior.log_prior()

    def log_likelihood(self) -> float:
        """
        Log likelihood of the alignments given the current graph. A model
        built without data has likelihood 1.
        """
        if self._likelihood is None:
            return 0.0
        return self._likelihood.log_likelihood()

    def log_posterior(self) -> float:
        """
        Unnormalized log posterior, log prior + log likelihood. The
        likelihood is not evaluated for states the prior rules out.

        Returns:
            float: The log posterior density.
        Raises:
            BuildError: If no scoring strategy is configured.
        """
        if self._scoring_strategy is None:
            raise BuildError("No scoring strategy configured")
        return self._scoring_strategy.score()

    def invalidate(self, affected_loci: list[Locus] = None) -> None:
        """
        Drop cached computations, for the given loci or for everything.
        """
        if self._scoring_strategy is not None:
            self._scoring_strategy.invalidate(affected_loci)


# =====================
# Common Build Phases
# =====================

class GraphPhase(BuildPhase):
    """
    Phase that sets up the conversion graph.
    """

    def __init__(self, graph: ConversionGraph) -> None:
        self._graph = graph

    @property
    def name(self) -> str:
        return "Graph"

    def execute(self, context: BuildContext) -> None:
        self._graph.check_consistency()
        context.set("graph", self._graph)
        context.set_meta("num_leaves",
                         len(self._graph.get_clonal_frame().leaves()))
        context.set_meta("loci", [locus.name
                                  for locus in self._graph.get_loci()])


class DataPhase(BuildPhase):
    """
    Phase that attaches one alignment per locus.
    """

    def __init__(self, alignments: dict[str, Alignment]) -> None:
        """
        Args:
            alignments (dict[str, Alignment]): Locus name to alignment.
        Returns:
            N/A
        """
        self._alignments = alignments

    @property
    def name(self) -> str:
        return "Data"

    def execute(self, context: BuildContext) -> None:
        context.set("data", dict(self._alignments))
        context.set_meta("data_type", "alignment")


class ParameterPhase(BuildPhase):
    """
    Phase that sets up model parameters. rho and delta fall back to the
    library defaults when never given.
    """

    def __init__(self, parameters: dict[str, Any] = None) -> None:
        self._parameters = parameters or {}

    @property
    def name(self) -> str:
        return "Parameters"

    def execute(self, context: BuildContext) -> None:
        # Merge with any existing parameters
        existing = context.get("parameters", {})
        existing.update(self._parameters)
        existing.setdefault("rho", Settings.DEFAULT_RHO)
        existing.setdefault("delta", Settings.DEFAULT_DELTA)
        if existing["rho"] < 0:
            raise BuildError(f"rho must be non-negative, got "
                             f"{existing['rho']}", self.name)
        if existing["delta"] < 1:
            raise BuildError(f"delta must be at least 1, got "
                             f"{existing['delta']}", self.name)
        context.set("parameters", existing)


class PopulationPhase(BuildPhase):
    """
    Phase that sets the effective population size function.
    """

    def __init__(self, population: PopulationFunction) -> None:
        self._population = population

    @property
    def name(self) -> str:
        return "Population"

    def execute(self, context: BuildContext) -> None:
        context.set("population", self._population)


class SubstitutionPhase(BuildPhase):
    """
    Phase that sets the substitution model.
    """

    def __init__(self, model: GTR) -> None:
        self._model = model

    @property
    def name(self) -> str:
        return "Substitution"

    def execute(self, context: BuildContext) -> None:
        context.set("substitution_model", self._model)


class ScoringPhase(BuildPhase):
    """
    Phase that configures the scoring strategy.

    With no strategy given, the coalescent with gene conversion prior is
    built from the graph, population and parameters, a sequence likelihood
    engine is added when data and a substitution model are present, and the
    two are combined into the posterior.
    """

    def __init__(self,
                 strategy: ScoringStrategy = None,
                 allow_same_edge_coalescence: bool =
                     Settings.ALLOW_SAME_EDGE_COALESCENCE,
                 threads: int = Settings.THREADS) -> None:
        """
        Args:
            strategy (ScoringStrategy, optional): A ready made strategy to use
                                                  as the posterior instead.
            allow_same_edge_coalescence (bool, optional): Same edge policy for
                                                          prior and trees.
            threads (int, optional): Worker threads for the likelihood.
        Returns:
            N/A
        """
        self._strategy = strategy
        self._allow_sec = allow_same_edge_coalescence
        self._threads = threads

    @property
    def name(self) -> str:
        return "Scoring"

    def prerequisites(self) -> list[str]:
        if self._strategy is not None:
            return []
        return ["graph", "parameters", "population"]

    def execute(self, context: BuildContext) -> None:
        if self._strategy is not None:
            context.set("scoring_strategy", self._strategy)
            return

        graph = context.require("graph")
        params = context.require("parameters")
        prior = CoalescentWithGeneConversion(
            graph, context.require("population"), params["rho"],
            params["delta"], allow_same_edge_coalescence=self._allow_sec)
        context.set("prior", prior)
        strategies: list[ScoringStrategy] = [prior]

        if context.has("data"):
            likelihood = SequenceLikelihoodEngine(
                graph, context.get("data"),
                context.require("substitution_model"),
                builder=MarginalTreeBuilder(self._allow_sec),
                threads=self._threads)
            context.set("likelihood", likelihood)
            strategies.append(likelihood)

        context.set("scoring_strategy", CompositeScoring(strategies))


class ValidationPhase(BuildPhase):
    """
    Phase that validates the complete model.
    """

    def __init__(self,
                 required_components: list[str] = None,
                 custom_validators: list[tuple[str, Callable]] = None) -> None:
        """
        Args:
            required_components: Component keys that must exist.
            custom_validators: List of (name, validator_func) tuples.
        Returns:
            N/A
        """
        self._required = required_components or ["graph", "scoring_strategy"]
        self._validators = custom_validators or []

    @property
    def name(self) -> str:
        return "Validation"

    def execute(self, context: BuildContext) -> None:
        for key in self._required:
            if not context.has(key):
                raise BuildError(f"Missing required component: {key}",
                                 self.name)

        for name, validator in self._validators:
            if not validator(context):
                raise BuildError(f"Validation failed: {name}", self.name)


class CustomPhase(BuildPhase):
    """
    A flexible phase that executes a custom function.
    """

    def __init__(self,
                 name: str,
                 executor: Callable[[BuildContext], None],
                 prerequisites: list[str] = None) -> None:
        """
        Args:
            name: Phase name.
            executor: Function(context) to execute.
            prerequisites: Required component keys.
        Returns:
            N/A
        """
        self._name = name
        self._executor = executor
        self._prerequisites = prerequisites or []

    @property
    def name(self) -> str:
        return self._name

    def prerequisites(self) -> list[str]:
        return list(self._prerequisites)

    def execute(self, context: BuildContext) -> None:
        self._executor(context)
