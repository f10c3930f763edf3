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

Reversible edits of a ConversionGraph. Each edit knows how to apply itself and
how to undo itself, so the graph can keep a log of pending edits and roll a
rejected proposal back without rebuilding anything.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ConversionGraph import ConversionGraph, Conversion


class GraphEdit(ABC):
    """
    Abstract superclass for all graph edits.

    An edit is built with everything needed to both apply and undo it, so
    that undo(graph) after apply(graph) restores the graph exactly.
    """

    @abstractmethod
    def apply(self, graph : ConversionGraph) -> None:
        """
        Perform the edit on 'graph'.

        Args:
            graph (ConversionGraph): The graph to edit.
        Returns:
            N/A
        """
        pass

    @abstractmethod
    def undo(self, graph : ConversionGraph) -> None:
        """
        Reverse a previous apply() on 'graph'.

        Args:
            graph (ConversionGraph): The graph that was edited.
        Returns:
            N/A
        """
        pass


class AddConversionEdit(GraphEdit):

    def __init__(self, conv : Conversion) -> None:
        self.conv = conv

    def apply(self, graph : ConversionGraph) -> None:
        graph._insert(self.conv)

    def undo(self, graph : ConversionGraph) -> None:
        graph._detach(self.conv)

    def __repr__(self) -> str:
        return f"AddConversionEdit({self.conv!r})"


class RemoveConversionEdit(GraphEdit):

    def __init__(self, conv : Conversion) -> None:
        self.conv = conv

    def apply(self, graph : ConversionGraph) -> None:
        graph._detach(self.conv)

    def undo(self, graph : ConversionGraph) -> None:
        graph._insert(self.conv)

    def __repr__(self) -> str:
        return f"RemoveConversionEdit({self.conv!r})"


class UpdateConversionEdit(GraphEdit):
    """
    Replace the fields of a held conversion. The conversion object (and its
    id) is kept, so references held by the caller stay valid.
    """

    def __init__(self, conv : Conversion, old_state : tuple,
                 new_state : tuple) -> None:
        self.conv = conv
        self.old_state = old_state
        self.new_state = new_state

    def apply(self, graph : ConversionGraph) -> None:
        graph._restate(self.conv, self.new_state)

    def undo(self, graph : ConversionGraph) -> None:
        graph._restate(self.conv, self.old_state)


class NodeHeightEdit(GraphEdit):
    """
    Move a clonal frame node.
    """

    def __init__(self, node : int, old_height : float,
                 new_height : float) -> None:
        self.node = node
        self.old_height = old_height
        self.new_height = new_height

    def apply(self, graph : ConversionGraph) -> None:
        graph._move_node(self.node, self.new_height)

    def undo(self, graph : ConversionGraph) -> None:
        graph._move_node(self.node, self.old_height)
