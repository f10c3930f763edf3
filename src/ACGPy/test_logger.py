import math
import pytest
from ACGPy.ConversionGraph import ClonalFrame, Conversion, ConversionGraph, \
                                  Locus
from ACGPy.ExtendedNewick import ExtendedNewickError
from ACGPy.Logger import *


################
### HELPERS ####
################

LOCI = [Locus("A", 300), Locus("B", 100)]

def make_graph() -> ConversionGraph:
    cf = ClonalFrame.from_parent_list([4, 4, 5, 5, 6, 6, -1],
                                      [0, 0, 0, 0, 1.0, 1.5, 3.0])
    return ConversionGraph(cf, LOCI)

################
#### TESTS #####
################

def test_graph_statistics():
    graph = make_graph()
    stats = graph_statistics(graph)
    assert stats["conversions"] == 0
    assert math.isnan(stats["mean_tract_length"])
    assert stats["cf_height"] == 3.0
    assert stats["cf_length"] == pytest.approx(8.5)

    graph.add_conversion(Conversion(LOCI[0], 10, 19, 0, 0.5, 2, 0.8))
    graph.add_conversion(Conversion(LOCI[1], 0, 29, 1, 0.5, 6, 4.0))
    stats = graph_statistics(graph)
    assert stats["conversions"] == 2
    assert stats["mean_tract_length"] == pytest.approx(20.0)
    assert stats["mean_departure_height"] == pytest.approx(0.5)
    assert stats["mean_arrival_height"] == pytest.approx(2.4)

def test_tree_log_round_trip(tmp_path):
    """
    This test checks:
    - Logged states are written to a tree log that reads back to equal graphs
    - The trace has a state column and one column per statistic or value
    """
    graph = make_graph()
    logger = Logger(1, LOCI)
    logger.log(graph, posterior = -10.5)
    conv = graph.add_conversion(Conversion(LOCI[0], 10, 19, 0, 0.5, 2, 0.8))
    logger.log(graph, state = 100, posterior = -9.25)
    graph.update_conversion(conv, arrival_node = 6, arrival_height = 3.5)
    logger.log(graph, state = 200, posterior = -11.0)
    assert len(logger) == 3
    assert logger.states == [0, 100, 200]
    assert len(logger.networkx_objs) == 3

    last = logger.last_graph()
    assert last.to_extended_newick() == graph.to_extended_newick()

    trees = tmp_path / "run.trees"
    logger.to_nexus(str(trees))
    loci, graphs = read_tree_log(str(trees))
    assert loci == LOCI
    assert [g.conversion_count() for g in graphs] == [0, 1, 1]
    assert graphs[-1].to_extended_newick() == graph.to_extended_newick()

    trace = tmp_path / "run.log"
    logger.to_trace(str(trace))
    lines = trace.read_text().splitlines()
    header = lines[0].split("\t")
    assert header[0] == "state"
    assert header[-1] == "posterior"
    assert len(lines) == 4
    row = dict(zip(header, lines[2].split("\t")))
    assert row["state"] == "100"
    assert float(row["posterior"]) == -9.25
    assert float(row["conversions"]) == 1.0

def test_errors(tmp_path):
    with pytest.raises(IndexError):
        Logger(2, LOCI).last_graph()

    path = tmp_path / "bad.trees"
    path.write_text("#nexus\nbegin trees;\nend;\n")
    with pytest.raises(ExtendedNewickError):
        read_tree_log(str(path))
