"""Graph module for multi-rooted dependency forests.

This module provides dependency nodes with bidirectional edge bookkeeping and
cycle rejection, a forest container that maintains root and leaf indices, and
a recursive JSON codec for the trees.
"""

from depforest.graph.exceptions import (
    CircularDependencyError,
    DependencyDecodeError,
    DependencyForestError,
)
from depforest.graph.forest import DependencyForest
from depforest.graph.node import DependencyNode
from depforest.graph.scheme import EqualityMode, SerializingScheme
from depforest.graph.validator import ForestValidator, ValidationReport, validate_forest

__all__ = [
    "CircularDependencyError",
    "DependencyDecodeError",
    "DependencyForest",
    "DependencyForestError",
    "DependencyNode",
    "EqualityMode",
    "ForestValidator",
    "SerializingScheme",
    "ValidationReport",
    "validate_forest",
]
