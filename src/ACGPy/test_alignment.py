import numpy as np
import pytest
from ACGPy.Alphabet import *
from ACGPy.Alignment import *


################
#### TESTS #####
################

def test_alphabet():
    """
    This test checks:
    - Bitmask codes for bases, ambiguity codes and gaps
    - Leaf partial vectors, with gaps treated as missing data
    - Unknown characters raise AlphabetError
    """
    dna = Alphabet()
    assert dna.get_type() == "DNA"
    assert [dna.map(c) for c in "ACGT"] == [1, 2, 4, 8]
    assert dna.map("r") == 5
    assert dna.map("N") == ANY
    assert dna.map("-") == GAP
    assert dna.reverse_map(4) == "G"

    partials = dna.partials(np.array([1, 5, GAP, ANY]))
    assert partials.shape == (4, 4)
    assert list(partials[0]) == [1, 0, 0, 0]
    assert list(partials[1]) == [1, 0, 1, 0]
    assert list(partials[2]) == [1, 1, 1, 1]
    assert list(partials[3]) == [1, 1, 1, 1]

    assert Alphabet(RNA).map("U") == 8
    with pytest.raises(AlphabetError):
        dna.map("Z")
    with pytest.raises(AlphabetError):
        Alphabet(RNA).map("T")

def test_alignment_access():
    aln = Alignment({"a" : "ACGTA", "b" : "ACGTT", "c" : "NCG-A"})
    assert aln.taxa() == ["a", "b", "c"]
    assert aln.site_count() == 5
    assert aln.has_taxon("b") and not aln.has_taxon("d")
    assert aln.state("b", 4) == 8
    assert aln.char("a", 2) == "G"
    assert list(aln.sequence("c")) == [ANY, 2, 4, GAP, 1]
    assert aln.columns(1, 2, ["c", "a"]).tolist() == [[2, 4], [2, 4]]

    with pytest.raises(AlignmentError):
        aln.state("d", 0)
    with pytest.raises(AlignmentError):
        aln.columns(3, 5)

def test_patterns():
    """
    Identical columns are merged and counted.
    """
    aln = Alignment([("a", "AAAC"), ("b", "AAAG"), ("c", "CCCC")])
    patterns, counts = aln.patterns(0, 3)
    assert patterns.shape == (3, 2)
    assert sorted(counts.tolist()) == [1, 3]

    patterns, counts = aln.patterns(0, 2)
    assert patterns.shape == (3, 1)
    assert counts.tolist() == [3]
    assert counts.sum() == 3

def test_bad_alignments():
    with pytest.raises(AlignmentError):
        Alignment({})
    with pytest.raises(AlignmentError):
        Alignment({"a" : "ACGT", "b" : "ACG"})
    with pytest.raises(AlignmentError):
        Alignment([("a", "ACGT"), ("a", "ACGT")])

def test_from_file(tmp_path):
    """
    Alignments are read through Bio.AlignIO.
    """
    path = tmp_path / "locus.fasta"
    path.write_text(">x\nACGTAC\n>y\nACGTTC\n")
    aln = Alignment.from_file(str(path))
    assert aln.taxa() == ["x", "y"]
    assert aln.char("y", 4) == "T"
