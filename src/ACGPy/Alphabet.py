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

Character to state code mappings for nucleotide data. Codes are bitmasks over
the four nucleotides, so an ambiguity code is simply the OR of the states it
may stand for and converts directly into a leaf partial likelihood vector.
"""

from dataclasses import dataclass
import numpy as np

########################
### MODULE CONSTANTS ###
########################

@dataclass(frozen=True)
class AlphabetMapping:
    name : str
    mapping : dict[str, int]

DNA : AlphabetMapping = AlphabetMapping("DNA",
                                        {"-" : 0, "A" : 1, "C" : 2, "M" : 3,
                                         "G" : 4, "R" : 5, "S" : 6, "V" : 7,
                                         "T" : 8, "W" : 9, "Y" : 10, "H" : 11,
                                         "K" : 12, "D" : 13, "B" : 14,
                                         "X" : 15, "N" : 15, "?" : 15})

RNA : AlphabetMapping = AlphabetMapping("RNA",
                                        {"-" : 0, "A" : 1, "C" : 2, "M" : 3,
                                         "G" : 4, "R" : 5, "S" : 6, "V" : 7,
                                         "U" : 8, "W" : 9, "Y" : 10, "H" : 11,
                                         "K" : 12, "D" : 13, "B" : 14,
                                         "X" : 15, "N" : 15, "?" : 15})

GAP : int = 0
ANY : int = 15

#########################
#### EXCEPTION CLASS ####
#########################

class AlphabetError(Exception):
    """
    Error class for all errors relating to alphabet mappings.
    """
    def __init__(self, message : str = "Error during Alphabet class mapping\
                                        operation") -> None:
        self.message = message
        super().__init__(self.message)

########################
#### ALPHABET CLASS ####
########################

class Alphabet:
    """
    Maps characters to bitmask state codes and codes to partial likelihood
    vectors.

     Symbol(s)	Name	   Partial Likelihood
         A	  Adenine	   [1,0,0,0] -> 1
         C	  Cytosine	   [0,1,0,0] -> 2
         G	  Guanine	   [0,0,1,0] -> 4
         T U	  Thymine  [0,0,0,1] -> 8
         X N ?    Any      [1,1,1,1] -> 15
         -        Gap      treated as missing data, [1,1,1,1]
    """

    STATES : int = 4

    def __init__(self, mapping : AlphabetMapping = DNA) -> None:
        """
        Args:
            mapping (AlphabetMapping, optional): DNA or RNA. Defaults to DNA.
        Returns:
            N/A
        """
        self.alphabet : AlphabetMapping = mapping
        self._reverse : dict[int, str] = {}
        for char, code in mapping.mapping.items():
            self._reverse.setdefault(code, char)

        # Row c is the partial likelihood vector of code c
        self._partials = np.zeros((ANY + 1, Alphabet.STATES))
        for code in range(ANY + 1):
            for state in range(Alphabet.STATES):
                if code & (1 << state):
                    self._partials[code][state] = 1.0
        self._partials[GAP] = 1.0

    def map(self, char : str) -> int:
        """
        Args:
            char (str): A sequence character.
        Returns:
            int: Its state code.
        Raises:
            AlphabetError: If the character is not part of the alphabet.
        """
        try:
            return self.alphabet.mapping[char.upper()]
        except KeyError:
            raise AlphabetError("Attempted to map <" + char + ">. That \
                                 character is invalid for this alphabet") \
                                 from None

    def map_sequence(self, seq : str) -> np.ndarray:
        return np.array([self.map(char) for char in seq], dtype = np.uint8)

    def reverse_map(self, code : int) -> str:
        try:
            return self._reverse[code]
        except KeyError:
            raise AlphabetError("Given state does not exist in alphabet") \
                from None

    def get_type(self) -> str:
        return self.alphabet.name

    def state_count(self) -> int:
        return Alphabet.STATES

    def partials(self, codes : np.ndarray) -> np.ndarray:
        """
        Leaf partial likelihood vectors for an array of state codes.

        Args:
            codes (np.ndarray): State codes, any shape.
        Returns:
            np.ndarray: Array of shape codes.shape + (4,).
        """
        return self._partials[np.asarray(codes, dtype = np.intp)]
