import pytest
from ACGPy.ConversionGraph import *
from ACGPy.MarginalTree import *
from ACGPy.Regions import RegionPartitioner


################
### HELPERS ####
################

LOCUS = Locus("A", 500)

def make_graph() -> ConversionGraph:
    # ((t0,t1):1.0,(t2,t3):1.5):3.0
    cf = ClonalFrame.from_parent_list([4, 4, 5, 5, 6, 6, -1],
                                      [0, 0, 0, 0, 1.0, 1.5, 3.0])
    return ConversionGraph(cf, [LOCUS])

def clade(*names : str) -> frozenset:
    return frozenset(names)

def tree_of(graph : ConversionGraph, site : int,
            builder : MarginalTreeBuilder = None) -> MarginalTree:
    builder = builder if builder is not None else MarginalTreeBuilder()
    region = RegionPartitioner().region_at(graph.get_regions(LOCUS), site)
    return builder.build(graph, region)

ALL = clade("t0", "t1", "t2", "t3")

################
#### TESTS #####
################

def test_clonal_frame_tree():
    """
    Without conversions the marginal tree is the clonal frame.
    """
    graph = make_graph()
    tree = tree_of(graph, 0)
    assert tree.clades() == {clade("t0", "t1"), clade("t2", "t3"), ALL}
    assert tree.get_height(tree.root()) == 3.0
    assert sorted(tree.leaf_names()) == ["t0", "t1", "t2", "t3"]
    assert tree.total_length() == pytest.approx(8.5)

    direct = MarginalTreeBuilder().clonal_frame_tree(graph.get_clonal_frame())
    assert direct.clades() == tree.clades()

def test_single_conversion():
    """
    Sites under a conversion see t0 regrafted onto the t2 edge; sites
    outside keep the clonal frame.
    """
    graph = make_graph()
    graph.add_conversion(Conversion(LOCUS, 100, 199, 0, 0.5, 2, 0.8))

    tree = tree_of(graph, 150)
    assert tree.clades() == {clade("t0", "t2"), clade("t0", "t2", "t3"), ALL}
    joins = [tree.get_height(n) for n in range(tree.node_count())
             if not tree.is_leaf(n)]
    assert sorted(joins) == [0.8, 1.5, 3.0]
    assert tree.total_length() == pytest.approx(0.8 + 0.8 + 0.7 + 1.5 +
                                                 3.0 + 1.5)

    assert tree_of(graph, 99).clades() == \
           {clade("t0", "t1"), clade("t2", "t3"), ALL}

def test_arrival_above_root():
    """
    A lineage arriving above the clonal frame root becomes the new root's
    outgroup.
    """
    graph = make_graph()
    graph.add_conversion(Conversion(LOCUS, 0, 9, 0, 0.5, 6, 4.0))
    tree = tree_of(graph, 5)
    assert tree.clades() == {clade("t2", "t3"), clade("t1", "t2", "t3"), ALL}
    assert tree.get_height(tree.root()) == 4.0

def test_same_edge_coalescence():
    """
    A conversion leaving and rejoining the same edge is silent when same
    edge coalescence is allowed, and rejected otherwise.
    """
    graph = make_graph()
    graph.add_conversion(Conversion(LOCUS, 0, 9, 0, 0.2, 0, 0.6))
    tree = tree_of(graph, 0)
    assert tree.clades() == {clade("t0", "t1"), clade("t2", "t3"), ALL}

    with pytest.raises(PartitionInconsistency):
        tree_of(graph, 0, MarginalTreeBuilder(False))

def test_overlapping_conversions_apply_in_height_order():
    """
    Overlapping conversions are applied in ascending departure height, so
    the later departure can pick up the earlier conversion's lineage.
    """
    graph = make_graph()
    graph.add_conversion(Conversion(LOCUS, 0, 49, 0, 0.5, 2, 0.7))
    graph.add_conversion(Conversion(LOCUS, 20, 79, 2, 0.6, 3, 0.9))

    region = graph.get_regions(LOCUS)[1]
    assert (region.start_site, region.end_site) == (20, 49)
    assert [c.departure_height for c in region.conversions] == [0.5, 0.6]

    tree = MarginalTreeBuilder().build(graph, region)
    assert tree.clades() == {clade("t2", "t3"), clade("t0", "t2", "t3"), ALL}

    # Sites 50-79 only see the second conversion
    tree = tree_of(graph, 60)
    assert tree.clades() == {clade("t2", "t3"), ALL, clade("t0", "t1")}

def test_unresolved_conversion():
    """
    Moving a clonal frame node out from under a conversion point makes the
    marginal tree impossible to build.
    """
    graph = make_graph()
    graph.add_conversion(Conversion(LOCUS, 0, 9, 0, 0.9, 2, 1.2))
    graph.set_node_height(4, 0.8)
    with pytest.raises(PartitionInconsistency):
        tree_of(graph, 0)

def test_newick():
    graph = make_graph()
    tree = tree_of(graph, 0)
    assert tree.newick() == "((t0:1.0,t1:1.0):2.0,(t2:1.5,t3:1.5):1.5);"
