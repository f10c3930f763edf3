import pytest
from ACGPy.ConversionGraph import *
from ACGPy.ExtendedNewick import *


################
### HELPERS ####
################

LOCI = [Locus("A", 500), Locus("B", 200)]

def make_graph() -> ConversionGraph:
    # ((t0,t1):1.0,(t2,t3):1.5):3.0
    cf = ClonalFrame.from_parent_list([4, 4, 5, 5, 6, 6, -1],
                                      [0, 0, 0, 0, 1.0, 1.5, 3.0])
    graph = ConversionGraph(cf, LOCI)
    a, b = LOCI
    graph.add_conversion(Conversion(a, 100, 199, 0, 0.5, 2, 0.8))
    graph.add_conversion(Conversion(a, 250, 299, 3, 0.1, 6, 3.7))
    # Two departures above t0, two arrivals above node 4, one above the root
    graph.add_conversion(Conversion(b, 0, 0, 0, 0.25, 4, 1.3))
    graph.add_conversion(Conversion(b, 20, 80, 5, 1.75, 4, 1.9))
    return graph

def describe(graph : ConversionGraph) -> tuple:
    cf = graph.get_clonal_frame()
    names = tuple(cf.get_name(n) for n in range(cf.node_count()))
    convs = tuple(sorted((c.id, c.locus.name, c.start_site, c.end_site,
                          c.departure_node, c.departure_height,
                          c.arrival_node, c.arrival_height)
                         for c in graph.get_conversions()))
    return cf.geometry(), names, convs

################
#### TESTS #####
################

def test_round_trip():
    """
    Writing then parsing reproduces the topology, heights, names and
    conversions exactly.
    """
    graph = make_graph()
    text = graph.to_extended_newick()
    assert text.endswith(";")
    assert text.count("#c") == 2 * graph.conversion_count()

    parsed = ConversionGraph.from_extended_newick(text, LOCI)
    assert describe(parsed) == describe(graph)
    assert parsed.pending_edits() == 0
    assert parsed.to_extended_newick() == text

def test_round_trip_without_conversions():
    graph = ConversionGraph(
        ClonalFrame.from_parent_list([2, 2, -1], [0, 0.5, 2.0],
                                     ["x", "y", None]), LOCI[:1])
    parsed = ExtendedNewickParser(LOCI[:1]).parse(
        ExtendedNewickWriter().write(graph))
    assert describe(parsed) == describe(graph)

def test_parse_errors():
    """
    Malformed or inconsistent strings raise ExtendedNewickError.
    """
    parser = ExtendedNewickParser(LOCI)
    text = make_graph().to_extended_newick()

    with pytest.raises(ExtendedNewickError):
        parser.parse("((a,b),c);")
    with pytest.raises(ExtendedNewickError):
        parser.parse(text.replace("&arrival=0", "&arrival=9"))
    with pytest.raises(ExtendedNewickError):
        ExtendedNewickParser(LOCI[:1]).parse(text)
    with pytest.raises(ExtendedNewickError):
        parser.parse(text.replace("node=6", "node=7"))

def test_unwritable_labels():
    cf = ClonalFrame.from_parent_list([2, 2, -1], [0, 0, 1.0],
                                      ["bad name", "ok", None])
    graph = ConversionGraph(cf, LOCI[:1])
    with pytest.raises(ExtendedNewickError):
        graph.to_extended_newick()

def test_parse_comment():
    assert parse_comment("&a=1,b=x") == {"a" : "1", "b" : "x"}
    assert parse_comment("[&node=3]") == {"node" : "3"}
    assert parse_comment(None) == {}
    with pytest.raises(ExtendedNewickError):
        parse_comment("&broken")

def test_clonal_frame_from_newick():
    """
    Plain Newick trees become clonal frames, serially sampled when the tree
    is not ultrametric.
    """
    cf = clonal_frame_from_newick("((A:1,B:1):1,C:2);")
    assert cf.leaf_names() == ["A", "B", "C"]
    assert cf.get_height(cf.root()) == pytest.approx(2.0)
    assert cf.get_parent(0) == cf.get_parent(1) == 3
    assert cf.total_length() == pytest.approx(5.0)

    cf = clonal_frame_from_newick("((A:1,B:0.5):1,C:1);")
    assert cf.get_height(cf.node_named("B")) == pytest.approx(0.5)
    assert cf.get_height(cf.node_named("C")) == pytest.approx(1.0)

    with pytest.raises(ExtendedNewickError):
        clonal_frame_from_newick("((A,B):1,C:2);")
    with pytest.raises(ClonalFrameError):
        clonal_frame_from_newick("(A:1,B:1,C:1);")
