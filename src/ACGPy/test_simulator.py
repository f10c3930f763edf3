import math
import numpy as np
import pytest
from ACGPy.ConversionGraph import ClonalFrame, Conversion, Locus
from ACGPy.PopulationModels import ConstantPopulation
from ACGPy.Coalescent import CoalescentWithGeneConversion
from ACGPy.Simulator import *


################
### HELPERS ####
################

LOCI = [Locus("A", 1000), Locus("B", 500)]

def four_taxon_frame() -> ClonalFrame:
    # ((t0,t1):1.0,(t2,t3):1.5):3.0, total branch length 8.5
    return ClonalFrame.from_parent_list([4, 4, 5, 5, 6, 6, -1],
                                        [0, 0, 0, 0, 1.0, 1.5, 3.0])

def make_simulator(seed : int, rho : float = 30.0, delta : float = 20.0,
                   **kwargs) -> ACGSimulator:
    return ACGSimulator(ConstantPopulation(1.0), rho, delta, LOCI,
                        rng = np.random.default_rng(seed), **kwargs)

################
#### TESTS #####
################

def test_clonal_frame():
    """
    This test checks:
    - Contemporaneous samples give a binary tree with all leaves at 0
    - Serially sampled leaves keep their heights and coalesce above them
    - Too few leaves, or mismatched heights, raise SimulationError
    """
    sim = make_simulator(1)
    cf = sim.simulate_clonal_frame(6)
    assert cf.node_count() == 11
    assert cf.leaf_names() == [f"t{i}" for i in range(6)]
    assert all(cf.get_height(leaf) == 0.0 for leaf in cf.leaves())
    assert cf.get_height(cf.root()) > 0

    cf = sim.simulate_clonal_frame(["a", "b", "c", "d"],
                                   sample_heights = [0, 0, 0.5, 1.0])
    assert cf.get_height(cf.node_named("c")) == 0.5
    assert cf.get_height(cf.node_named("d")) == 1.0
    assert cf.get_height(cf.root()) > 1.0
    cf.validate()

    with pytest.raises(SimulationError):
        sim.simulate_clonal_frame(1)
    with pytest.raises(SimulationError):
        sim.simulate_clonal_frame(3, sample_heights = [0, 0])

def test_footprint():
    """
    Simulated tracts lie inside their loci, in genome order, separated by at
    least one clonal frame site, so the prior gives them finite density.
    """
    sim = make_simulator(2)
    offsets = {"A" : 0, "B" : 1000}
    for _ in range(20):
        tracts = sim.simulate_footprint(8.5)
        spans = []
        for locus, start, end in tracts:
            assert 0 <= start <= end < locus.site_count
            spans.append((offsets[locus.name] + start,
                          offsets[locus.name] + end))
        for (_, end), (start, _) in zip(spans, spans[1:]):
            assert start > end + 1

    graph = sim.simulate(clonal_frame = four_taxon_frame())
    assert graph.conversion_count() > 0
    prior = CoalescentWithGeneConversion(graph, ConstantPopulation(1.0),
                                         30.0, 20.0)
    assert math.isfinite(prior.footprint_log_p())
    assert math.isfinite(prior.log_prior())

    assert make_simulator(2, rho = 0.0).simulate_footprint(8.5) == []
    with pytest.raises(SimulationError):
        make_simulator(2, rho = 1e4).simulate_footprint(8.5)

def test_simulated_graph_is_valid():
    """
    Whole simulated graphs are consistent, committed, and resolve every
    conversion to clonal frame edges.
    """
    sim = make_simulator(3)
    graph = sim.simulate(leaves = 5)
    assert graph.is_valid()
    assert graph.pending_edits() == 0
    assert graph.get_loci() == LOCI
    for conv in graph.get_conversions():
        assert conv.departure_height < conv.arrival_height
        assert not graph.get_clonal_frame().is_root(conv.departure_node)

def test_same_edge_coalescence_disallowed():
    """
    Without same edge coalescence a lineage never rejoins the edge it left.
    """
    sim = make_simulator(4, allow_same_edge_coalescence = False)
    graph = sim.simulate(clonal_frame = four_taxon_frame())
    for _ in range(200):
        conv = sim.draw_conversion(graph)
        assert conv.arrival_node != conv.departure_node
        graph.check_conversion(conv)

    # Departing just below the root, the only way back is above the root
    node, height = sim.draw_arrival(graph, 4, 2.99)
    assert height > 2.99
    assert node == 5 if height < 3.0 else node == 6

def test_affected_region():
    """
    Drawn tracts lie in their locus, the reported log probability matches
    affected_region_log_prob, and those probabilities sum to one.
    """
    loci = [Locus("A", 5), Locus("B", 3)]
    sim = ACGSimulator(ConstantPopulation(1.0), 1.0, 2.0, loci,
                       rng = np.random.default_rng(5))
    graph = sim.simulate(clonal_frame = four_taxon_frame())

    for _ in range(100):
        locus, start, end, log_p = sim.draw_affected_region(graph)
        assert 0 <= start <= end < locus.site_count
        assert log_p == sim.affected_region_log_prob(graph, locus, start, end)

    total = sum(math.exp(sim.affected_region_log_prob(graph, locus, s, e))
                for locus in loci
                for s in range(locus.site_count)
                for e in range(s, locus.site_count))
    assert total == pytest.approx(1.0)

def test_seeded_runs_repeat():
    first = make_simulator(6).simulate(leaves = 4)
    second = make_simulator(6).simulate(leaves = 4)
    assert first.to_extended_newick() == second.to_extended_newick()

def test_invalid_arguments():
    pop = ConstantPopulation(1.0)
    with pytest.raises(SimulationError):
        ACGSimulator(pop, -1.0, 10.0, LOCI)
    with pytest.raises(SimulationError):
        ACGSimulator(pop, 1.0, 0.5, LOCI)
    with pytest.raises(SimulationError):
        ACGSimulator(pop, 1.0, 10.0, [])
    with pytest.raises(SimulationError):
        make_simulator(7).simulate()
