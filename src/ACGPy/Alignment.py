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

Aligned sequence data for one locus, stored as a taxa x sites matrix of
bitmask state codes. Provides random access to single characters, column
slices, and compression of a site range into unique patterns with counts.
"""

from __future__ import annotations
import numpy as np
from Bio import AlignIO

from .Alphabet import Alphabet, DNA

#########################
#### EXCEPTION CLASS ####
#########################

class AlignmentError(Exception):
    def __init__(self, message : str = "Alignment Error") -> None:
        self.message = message
        super().__init__(self.message)


class Alignment:
    """
    Multiple sequence alignment of one locus.
    """

    def __init__(self,
                 sequences : dict[str, str] | list[tuple[str, str]],
                 alphabet : Alphabet = None) -> None:
        """
        Args:
            sequences (dict[str, str] | list[tuple[str, str]]): Taxon name to
                aligned sequence. All sequences must have the same length.
            alphabet (Alphabet, optional): Character mapping. Defaults to DNA.
        Returns:
            N/A
        Raises:
            AlignmentError: On empty input, duplicate names or ragged rows.
        """
        self.alphabet : Alphabet = alphabet if alphabet is not None \
                                   else Alphabet(DNA)
        pairs = list(sequences.items()) if isinstance(sequences, dict) \
                else list(sequences)
        if not pairs:
            raise AlignmentError("An alignment needs at least one sequence")

        self._taxa : list[str] = [name for name, _ in pairs]
        if len(set(self._taxa)) != len(self._taxa):
            raise AlignmentError("Duplicate taxon names in alignment")

        lengths = {len(seq) for _, seq in pairs}
        if len(lengths) != 1:
            raise AlignmentError(f"Sequences have different lengths: \
                                   {sorted(lengths)}")

        self._row : dict[str, int] = {name : idx
                                      for idx, name in enumerate(self._taxa)}
        self._matrix : np.ndarray = np.vstack(
            [self.alphabet.map_sequence(str(seq)) for _, seq in pairs])

    @classmethod
    def from_file(cls, filename : str, format : str = "fasta",
                  alphabet : Alphabet = None) -> Alignment:
        """
        Read an alignment with Bio.AlignIO.

        Args:
            filename (str): Path to the alignment file.
            format (str, optional): Any AlignIO format name. Defaults to
                                    "fasta".
            alphabet (Alphabet, optional): Defaults to DNA.
        Returns:
            Alignment: The alignment.
        """
        msa = AlignIO.read(filename, format)
        return cls([(rec.id, str(rec.seq)) for rec in msa], alphabet)

    def taxa(self) -> list[str]:
        return list(self._taxa)

    def site_count(self) -> int:
        return self._matrix.shape[1]

    def has_taxon(self, taxon : str) -> bool:
        return taxon in self._row

    def state(self, taxon : str, site : int) -> int:
        """
        Args:
            taxon (str): A taxon of the alignment.
            site (int): A site index.
        Returns:
            int: The state code of 'taxon' at 'site'.
        """
        return int(self._matrix[self._row_of(taxon), site])

    def char(self, taxon : str, site : int) -> str:
        return self.alphabet.reverse_map(self.state(taxon, site))

    def sequence(self, taxon : str) -> np.ndarray:
        return self._matrix[self._row_of(taxon)].copy()

    def columns(self, start : int, end : int,
                taxa : list[str] = None) -> np.ndarray:
        """
        State codes of sites [start, end] (inclusive).

        Args:
            start (int): First site.
            end (int): Last site.
            taxa (list[str], optional): Row order. Defaults to the alignment
                                        order.
        Returns:
            np.ndarray: Array of shape (len(taxa), end - start + 1).
        """
        if start < 0 or end >= self.site_count() or start > end:
            raise AlignmentError(f"Site range [{start}, {end}] is outside the \
                                   alignment")
        rows = [self._row_of(t) for t in taxa] if taxa is not None \
               else list(range(len(self._taxa)))
        return self._matrix[rows, start:end + 1]

    def patterns(self, start : int, end : int,
                 taxa : list[str] = None) -> tuple[np.ndarray, np.ndarray]:
        """
        Compress sites [start, end] into unique site patterns.

        Args:
            start (int): First site.
            end (int): Last site (inclusive).
            taxa (list[str], optional): Row order. Defaults to the alignment
                                        order.
        Returns:
            tuple[np.ndarray, np.ndarray]: The unique columns, shape
                (len(taxa), n_patterns), and the number of sites showing each
                pattern.
        """
        cols = self.columns(start, end, taxa)
        unique, counts = np.unique(cols, axis = 1, return_counts = True)
        return unique, counts

    def _row_of(self, taxon : str) -> int:
        try:
            return self._row[taxon]
        except KeyError:
            raise AlignmentError(f"No sequence for taxon '{taxon}'") from None

    def __repr__(self) -> str:
        return (f"Alignment(taxa={len(self._taxa)}, "
                f"sites={self.site_count()})")
