import math
import numpy as np
import pytest
from ACGPy.Alignment import Alignment, AlignmentError
from ACGPy.ConversionGraph import ClonalFrame, Conversion, ConversionGraph, \
                                  Locus
from ACGPy.GTR import GTR, HKY, JC
from ACGPy.MarginalTree import MarginalTreeBuilder
from ACGPy.Likelihood import *


################
### HELPERS ####
################

TAXA = ["t0", "t1", "t2", "t3"]

def four_taxon_frame() -> ClonalFrame:
    # ((t0,t1):1.0,(t2,t3):1.5):3.0, heights scaled down for realistic data
    return ClonalFrame.from_parent_list([4, 4, 5, 5, 6, 6, -1],
                                        [0, 0, 0, 0, 0.1, 0.15, 0.3])

def random_alignment(sites : int, seed : int, taxa : list[str] = TAXA) \
        -> Alignment:
    """
    Related sequences: a random ancestor with a few percent of sites mutated
    per taxon, so that many columns repeat.
    """
    rng = np.random.default_rng(seed)
    ancestor = rng.choice(list("ACGT"), size = sites)
    seqs = {}
    for taxon in taxa:
        seq = ancestor.copy()
        flips = rng.random(sites) < 0.05
        seq[flips] = rng.choice(list("ACGT"), size = int(flips.sum()))
        seqs[taxon] = "".join(seq)
    return Alignment(seqs)

def scenario() -> tuple[ConversionGraph, Locus, Alignment]:
    """
    Four taxa, one 500 site locus, conversions on sites 100-199 and 250-299.
    """
    locus = Locus("A", 500)
    graph = ConversionGraph(four_taxon_frame(), [locus])
    graph.add_conversion(Conversion(locus, 100, 199, 0, 0.05, 2, 0.08))
    graph.add_conversion(Conversion(locus, 250, 299, 3, 0.02, 4, 0.2))
    graph.commit()
    return graph, locus, random_alignment(500, 7)

################
#### TESTS #####
################

def test_scenario_matches_generic_routine():
    """
    The engine total equals the per region sum of plain, uncompressed
    pruning likelihoods on independently built marginal trees.
    """
    graph, locus, aln = scenario()
    model = HKY([.3, .2, .2, .3], 2.0)
    engine = SequenceLikelihoodEngine(graph, {"A" : aln}, model)

    regions = graph.get_regions(locus)
    assert [(r.start_site, r.end_site) for r in regions] == \
           [(0, 99), (100, 199), (200, 249), (250, 299), (300, 499)]

    builder = MarginalTreeBuilder()
    expected = 0.0
    for region in regions:
        tree = builder.build(graph, region)
        expected += felsenstein_log_likelihood(tree, aln, model,
                                               region.start_site,
                                               region.end_site)

    total = engine.log_likelihood()
    assert math.isfinite(total)
    assert total == pytest.approx(expected, rel = 1e-14)

    # Three distinct genealogies: the clonal frame and one per conversion
    newicks = {builder.build(graph, r).newick() for r in regions}
    assert len(newicks) == 3

def test_no_conversions_is_tree_likelihood():
    """
    With no conversions the likelihood is that of the clonal frame tree.
    """
    locus = Locus("A", 300)
    graph = ConversionGraph(four_taxon_frame(), [locus])
    aln = random_alignment(300, 11)
    model = JC()
    engine = SequenceLikelihoodEngine(graph, {"A" : aln}, model)

    tree = MarginalTreeBuilder().clonal_frame_tree(graph.get_clonal_frame())
    assert engine.log_likelihood() == \
           pytest.approx(felsenstein_log_likelihood(tree, aln, model),
                         rel = 1e-12)

def test_repeatable_and_rollback():
    """
    This test checks:
    - Scoring twice without a mutation gives identical values
    - After a rejected proposal is rolled back, the score is identical to
      the score before it and needs no region recomputation
    - The incremental score after a mutation matches a fresh engine
    """
    graph, locus, aln = scenario()
    model = JC()
    engine = SequenceLikelihoodEngine(graph, {"A" : aln}, model)
    before = engine.log_likelihood()
    assert engine.log_likelihood() == before
    assert not graph.is_dirty()

    calls = []
    compute = engine.region_log_likelihood
    def counted(region):
        calls.append((region.start_site, region.end_site))
        return compute(region)
    engine.region_log_likelihood = counted

    marker = graph.checkpoint()
    conv = graph.add_conversion(Conversion(locus, 400, 449, 1, 0.01, 5, 0.25))
    moved = engine.log_likelihood()
    # Only the regions around the new tract are new
    assert sorted(calls) == [(300, 399), (400, 449), (450, 499)]
    fresh = SequenceLikelihoodEngine(graph, {"A" : aln}, model)
    assert moved == pytest.approx(fresh.log_likelihood(), rel = 1e-12)

    graph.update_conversion(conv, arrival_height = 0.28)
    engine.log_likelihood()

    calls.clear()
    graph.rollback(marker)
    assert engine.log_likelihood() == before
    assert calls == [(300, 499)]

def test_clonal_frame_edit_invalidates():
    """
    Moving a clonal frame node changes every locus' contribution.
    """
    a, b = Locus("A", 120), Locus("B", 80)
    graph = ConversionGraph(four_taxon_frame(), [a, b])
    alns = {"A" : random_alignment(120, 1), "B" : random_alignment(80, 2)}
    engine = SequenceLikelihoodEngine(graph, alns, JC())
    first_a = engine.locus_log_likelihood(a)
    first = engine.log_likelihood()
    assert first == pytest.approx(first_a + engine.locus_log_likelihood(b))

    graph.set_node_height(6, 0.5)
    assert engine.locus_log_likelihood(a) != first_a
    graph.rollback()
    assert engine.locus_log_likelihood(a) == first_a
    assert engine.log_likelihood() == first

def test_untouched_locus_is_reused():
    """
    A conversion on one locus does not recompute any other locus.
    """
    a, b = Locus("A", 120), Locus("B", 80)
    graph = ConversionGraph(four_taxon_frame(), [a, b])
    alns = {"A" : random_alignment(120, 1), "B" : random_alignment(80, 2)}
    engine = SequenceLikelihoodEngine(graph, alns, JC())
    engine.log_likelihood()

    seen = []
    compute = engine.region_log_likelihood
    def counted(region):
        seen.append(region.locus.name)
        return compute(region)
    engine.region_log_likelihood = counted

    graph.add_conversion(Conversion(b, 10, 19, 0, 0.05, 3, 0.1))
    engine.log_likelihood()
    assert seen == ["B", "B", "B"]

def test_threads_do_not_change_result():
    """
    Region likelihoods computed by worker threads sum to the same value.
    """
    graph, locus, aln = scenario()
    model = GTR([.1, .2, .3, .4], [1, 2, 1, 1, 2, 1])
    serial = SequenceLikelihoodEngine(graph, {"A" : aln}, model)
    threaded = SequenceLikelihoodEngine(graph, {"A" : aln}, model,
                                        threads = 4)
    assert threaded.log_likelihood() == serial.log_likelihood()

def test_missing_data():
    """
    Gaps and N are missing data: an all gap column has probability 1.
    """
    locus = Locus("A", 3)
    graph = ConversionGraph(four_taxon_frame(), [locus])
    aln = Alignment({"t0" : "A-N", "t1" : "A-A", "t2" : "C-G", "t3" : "A-T"})
    engine = SequenceLikelihoodEngine(graph, {"A" : aln}, JC())
    total = engine.log_likelihood()
    assert math.isfinite(total)

    tree = MarginalTreeBuilder().clonal_frame_tree(graph.get_clonal_frame())
    assert felsenstein_log_likelihood(tree, aln, JC(), 1, 1) == \
           pytest.approx(0.0, abs = 1e-12)
    assert engine.tree_log_likelihood(tree, aln, 1, 1) == \
           pytest.approx(0.0, abs = 1e-12)

def test_data_checks():
    """
    This test checks:
    - Missing alignments, wrong lengths and missing taxa raise
      AlignmentError
    - Extra taxa and alignments for unknown loci only warn
    """
    locus = Locus("A", 50)
    graph = ConversionGraph(four_taxon_frame(), [locus])

    with pytest.raises(AlignmentError):
        SequenceLikelihoodEngine(graph, {}, JC())
    with pytest.raises(AlignmentError):
        SequenceLikelihoodEngine(graph, {"A" : random_alignment(40, 0)}, JC())
    with pytest.raises(AlignmentError):
        SequenceLikelihoodEngine(graph,
                                 {"A" : random_alignment(50, 0, TAXA[:3])},
                                 JC())

    with pytest.warns(UserWarning):
        SequenceLikelihoodEngine(graph,
                                 {"A" : random_alignment(50, 0,
                                                         TAXA + ["t9"])},
                                 JC())
    with pytest.warns(UserWarning):
        SequenceLikelihoodEngine(graph, {"A" : random_alignment(50, 0),
                                         "Z" : random_alignment(5, 0)},
                                 JC())

def test_substitution_parameters_invalidate():
    """
    This test checks:
    - Changing kappa gives the same value as a fresh engine
    - Changing it back is served from cache without recomputing a region
    """
    graph, locus, aln = scenario()
    model = HKY([.3, .2, .2, .3], 2.0)
    engine = SequenceLikelihoodEngine(graph, {"A" : aln}, model)
    before = engine.log_likelihood()

    model.set_hyperparams({"kappa" : 8.0})
    moved = engine.log_likelihood()
    assert moved != before
    fresh = SequenceLikelihoodEngine(graph, {"A" : aln},
                                     HKY([.3, .2, .2, .3], 8.0))
    assert moved == pytest.approx(fresh.log_likelihood(), rel = 1e-12)

    calls = []
    compute = engine.region_log_likelihood
    def counted(region):
        calls.append((region.start_site, region.end_site))
        return compute(region)
    engine.region_log_likelihood = counted

    model.set_hyperparams({"kappa" : 2.0})
    assert engine.log_likelihood() == before
    assert calls == []
